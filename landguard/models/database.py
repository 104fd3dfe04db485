"""
Database connection and table configuration.
"""
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

from landguard.config import AWS_REGION, TABLE_CONFIG
from landguard.errors import StoreUnavailable


@lru_cache(maxsize=None)
def _ddb():
    return boto3.resource("dynamodb", region_name=AWS_REGION)


def get_table(name: str):
    """Table handle for a ``TABLE_CONFIG`` key, created on first use."""
    return _ddb().Table(TABLE_CONFIG[name])


def client_error_message(error: ClientError) -> str:
    return (error.response.get("Error", {}) or {}).get("Message", str(error))


def store_unavailable(table_key: str, operation: str, error: ClientError) -> StoreUnavailable:
    return StoreUnavailable(
        f"{operation} on {table_key} failed: {client_error_message(error)}",
        table=table_key,
        operation=operation,
    )

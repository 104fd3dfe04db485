"""
JSON serialization utilities for DynamoDB types.
"""
from decimal import Decimal
from datetime import date, datetime
from enum import Enum
from typing import Any


def json_clean(obj: Any) -> Any:
    """
    Recursively convert boto3/DynamoDB types to JSON-safe types.
    """
    if isinstance(obj, dict):
        return {k: json_clean(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [json_clean(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted(json_clean(v) for v in obj)
    if isinstance(obj, Decimal):
        return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


def to_dynamo(obj: Any) -> Any:
    """Convert floats to Decimal so snapshots can be written with put_item."""
    if isinstance(obj, dict):
        return {k: to_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_dynamo(v) for v in obj]
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj

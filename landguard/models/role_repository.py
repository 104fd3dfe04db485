"""
Role repository for loading role definitions.
"""
import json
from typing import Any, Dict, List

from botocore.exceptions import ClientError

from landguard.logging_config import create_logger
from landguard.permissions import RoleRegistry
from .database import get_table, store_unavailable

logger = create_logger("models.role_repository")


def parse_as_object(raw_data):
    """Parse JSON string into a dict safely, or return empty dict if invalid."""
    if isinstance(raw_data, str):
        try:
            return json.loads(raw_data)
        except ValueError:
            return {}
    return raw_data or {}


class DynamoRoleStore:
    """Roles table rows look like ``{"role": "Manager", "permissions": {...}}``."""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table("roles")

    def scan_all_roles(self) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        try:
            resp = self.table.scan()
            items.extend(resp.get("Items", []))
            while "LastEvaluatedKey" in resp:
                resp = self.table.scan(ExclusiveStartKey=resp["LastEvaluatedKey"])
                items.extend(resp.get("Items", []))
        except ClientError as e:
            logger.error(f"Error scanning roles: {e}")
            raise store_unavailable("roles", "scan", e)
        return items

    def load_registry(self) -> RoleRegistry:
        table = {}
        for item in self.scan_all_roles():
            role_name = item.get("role") or item.get("name")
            if role_name:
                table[role_name] = parse_as_object(item.get("permissions"))
        logger.info(f"Loaded {len(table)} role definitions")
        return RoleRegistry.from_mapping(table)

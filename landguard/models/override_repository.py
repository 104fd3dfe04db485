"""
Permission override repository (PK ``userID``, SK ``permissionKey``).
"""
from typing import List, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from landguard.logging_config import create_logger
from landguard.permissions import Permission
from .database import get_table, store_unavailable
from .entities import PermissionOverride, override_sort_key

logger = create_logger("models.override_repository")


class DynamoOverrideStore:

    def __init__(self, table=None):
        self.table = table if table is not None else get_table("overrides")

    def get_override(self, identity_id: str, permission: Permission) -> Optional[PermissionOverride]:
        try:
            resp = self.table.get_item(
                Key={"userID": str(identity_id), "permissionKey": override_sort_key(permission)},
                ConsistentRead=True,
            )
        except ClientError as e:
            logger.error(f"Error loading override {permission} for {identity_id}: {e}")
            raise store_unavailable("overrides", "get_item", e)
        item = resp.get("Item")
        return PermissionOverride.from_item(item) if item else None

    def list_overrides(self, identity_id: str) -> List[PermissionOverride]:
        items = []
        query_kwargs = {"KeyConditionExpression": Key("userID").eq(str(identity_id))}
        try:
            while True:
                resp = self.table.query(**query_kwargs)
                items.extend(resp.get("Items", []) or [])
                if "LastEvaluatedKey" not in resp:
                    break
                query_kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as e:
            logger.error(f"Error listing overrides for {identity_id}: {e}")
            raise store_unavailable("overrides", "query", e)
        overrides = [PermissionOverride.from_item(item) for item in items]
        return [o for o in overrides if o is not None]

    def put_override(self, override: PermissionOverride) -> None:
        try:
            self.table.put_item(Item=override.to_item())
        except ClientError as e:
            raise store_unavailable("overrides", "put_item", e)

    def delete_override(self, identity_id: str, permission: Permission) -> None:
        try:
            self.table.delete_item(Key={"userID": str(identity_id), "permissionKey": override_sort_key(permission)})
        except ClientError as e:
            raise store_unavailable("overrides", "delete_item", e)

"""
Resource scope repository (PK ``userID``, SK ``resourceType``).
"""
from botocore.exceptions import ClientError

from landguard.logging_config import create_logger
from landguard.permissions import ResourceType
from .database import get_table, store_unavailable
from .entities import ResourceScope

logger = create_logger("models.scope_repository")


class DynamoScopeStore:

    def __init__(self, table=None):
        self.table = table if table is not None else get_table("scopes")

    def get_scope(self, identity_id: str, resource_type: ResourceType) -> ResourceScope:
        """Scope for one resource type; a missing row means unrestricted."""
        try:
            resp = self.table.get_item(
                Key={"userID": str(identity_id), "resourceType": resource_type.value},
                ConsistentRead=True,
            )
        except ClientError as e:
            logger.error(f"Error loading {resource_type.value} scope for {identity_id}: {e}")
            raise store_unavailable("scopes", "get_item", e)
        item = resp.get("Item")
        if not item:
            return ResourceScope.unrestricted(str(identity_id), resource_type)
        return ResourceScope.from_item(item)

    def put_scope(self, scope: ResourceScope) -> None:
        try:
            self.table.put_item(Item=scope.to_item())
        except ClientError as e:
            raise store_unavailable("scopes", "put_item", e)

    def delete_scope(self, identity_id: str, resource_type: ResourceType) -> None:
        try:
            self.table.delete_item(Key={"userID": str(identity_id), "resourceType": resource_type.value})
        except ClientError as e:
            raise store_unavailable("scopes", "delete_item", e)

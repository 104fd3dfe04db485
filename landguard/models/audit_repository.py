"""
Audit log sink (PK ``entryId``, GSI ``resourceKey-index`` on ``resourceKey``/``createdAt``).

The sink only ever inserts. There is no update or delete path.
"""
from typing import List, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from landguard.logging_config import create_logger
from .database import get_table, store_unavailable
from .entities import AuditLogEntry

logger = create_logger("models.audit_repository")

RESOURCE_INDEX = "resourceKey-index"


class DynamoAuditSink:

    def __init__(self, table=None, resource_index: str = RESOURCE_INDEX):
        self.table = table if table is not None else get_table("audit_logs")
        self.resource_index = resource_index

    def append(self, entry: AuditLogEntry) -> None:
        try:
            self.table.put_item(
                Item=entry.to_item(),
                ConditionExpression="attribute_not_exists(entryId)",
            )
        except ClientError as e:
            logger.error(f"Error appending audit entry {entry.entry_id}: {e}")
            raise store_unavailable("audit_logs", "put_item", e)

    def get(self, entry_id: str) -> Optional[AuditLogEntry]:
        try:
            resp = self.table.get_item(Key={"entryId": entry_id})
        except ClientError as e:
            raise store_unavailable("audit_logs", "get_item", e)
        item = resp.get("Item")
        return AuditLogEntry.from_item(item) if item else None

    def list_for_resource(self, resource_type: str, resource_id: str) -> List[AuditLogEntry]:
        items = []
        query_kwargs = {
            "IndexName": self.resource_index,
            "KeyConditionExpression": Key("resourceKey").eq(f"{resource_type}#{resource_id}"),
        }
        try:
            while True:
                resp = self.table.query(**query_kwargs)
                items.extend(resp.get("Items", []) or [])
                if "LastEvaluatedKey" not in resp:
                    break
                query_kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as e:
            raise store_unavailable("audit_logs", "query", e)
        return [AuditLogEntry.from_item(item) for item in items]

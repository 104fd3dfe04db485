"""
Identity repository: role and status lookups plus login credential lookup.
"""
from typing import Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from landguard.config import TABLE_CONFIG
from landguard.logging_config import create_logger
from .database import get_table, store_unavailable
from .entities import CredentialRecord, Identity

logger = create_logger("models.identity_repository")


class DynamoIdentityStore:
    """Reads identities from the users table (PK ``userID``, GSI on ``email``)."""

    def __init__(self, table=None, email_index: Optional[str] = None):
        self.table = table if table is not None else get_table("identities")
        self.email_index = email_index or TABLE_CONFIG["identity_email_index"]

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        try:
            resp = self.table.get_item(Key={"userID": str(identity_id)}, ConsistentRead=True)
        except ClientError as e:
            logger.error(f"Error loading identity {identity_id}: {e}")
            raise store_unavailable("identities", "get_item", e)
        item = resp.get("Item")
        return Identity.from_item(item) if item else None

    def find_credentials(self, login_identifier: str) -> Optional[CredentialRecord]:
        """Look up the credential row for a normalized email."""
        try:
            resp = self.table.query(
                IndexName=self.email_index,
                KeyConditionExpression=Key("email").eq(login_identifier),
                Limit=1,
            )
        except ClientError as e:
            logger.error(f"Error looking up credentials for login identifier: {e}")
            raise store_unavailable("identities", "query", e)
        items = resp.get("Items", []) or []
        return CredentialRecord.from_item(items[0]) if items else None

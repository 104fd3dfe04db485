"""
Login attempt ledger (PK ``identityKey``, SK ``attemptKey``).

Sort keys are ``<attemptedAt ISO>#<sequence>``; the sequence comes from an
atomic counter per identity in the sequences table, so two parallel
appends for one identity can never overwrite each other.

The sequences table also carries two small rows per identity:
``LASTOK#<identity>`` (copy of the latest success, for a single-item read)
and ``LOGINLEASE#<identity>`` (the cross-instance login lease).
"""
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from landguard.logging_config import create_logger
from landguard.utils.time_utils import now_iso, to_iso
from .database import get_table, store_unavailable
from .entities import LoginAttempt

logger = create_logger("models.attempt_repository")


def _is_condition_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoAttemptLedger:

    def __init__(self, table=None, sequences_table=None):
        self.table = table if table is not None else get_table("login_attempts")
        self.sequences_table = sequences_table if sequences_table is not None else get_table("sequences")

    def next_sequence(self, identity_key: str) -> int:
        try:
            result = self.sequences_table.update_item(
                Key={"prefix": f"LOGIN#{identity_key}"},
                UpdateExpression="SET lastValue = if_not_exists(lastValue, :start) + :step, updatedAt = :timestamp",
                ExpressionAttributeValues={
                    ":start": 0,
                    ":step": 1,
                    ":timestamp": now_iso(),
                },
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as e:
            raise store_unavailable("sequences", "update_item", e)
        return int(result["Attributes"]["lastValue"])

    def append(self, attempt: LoginAttempt) -> LoginAttempt:
        stored = replace(attempt, sequence=self.next_sequence(attempt.identity))
        try:
            self.table.put_item(
                Item=stored.to_item(),
                ConditionExpression="attribute_not_exists(attemptKey)",
            )
        except ClientError as e:
            logger.error(f"Error appending login attempt: {e}")
            raise store_unavailable("login_attempts", "put_item", e)
        if stored.success:
            self._mark_success(stored)
        return stored

    def _mark_success(self, attempt: LoginAttempt) -> None:
        # Only moves forward: an older success finishing late leaves the marker alone.
        try:
            self.sequences_table.put_item(
                Item={"prefix": f"LASTOK#{attempt.identity}", "attemptKey": attempt.sort_key,
                      "attempt": attempt.to_item()},
                ConditionExpression="attribute_not_exists(attemptKey) OR attemptKey < :key",
                ExpressionAttributeValues={":key": attempt.sort_key},
            )
        except ClientError as e:
            if _is_condition_failure(e):
                return
            raise store_unavailable("sequences", "put_item", e)

    def _query_all(self, **query_kwargs) -> List[dict]:
        items = []
        try:
            while True:
                resp = self.table.query(**query_kwargs)
                items.extend(resp.get("Items", []) or [])
                if "LastEvaluatedKey" not in resp:
                    break
                query_kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as e:
            logger.error(f"Error reading login attempts: {e}")
            raise store_unavailable("login_attempts", "query", e)
        return items

    def list_since(self, identity_key: str, since: datetime) -> List[LoginAttempt]:
        items = self._query_all(
            KeyConditionExpression=Key("identityKey").eq(identity_key) & Key("attemptKey").gte(to_iso(since)),
            ConsistentRead=True,
        )
        return [LoginAttempt.from_item(item) for item in items]

    def latest_success(self, identity_key: str) -> Optional[LoginAttempt]:
        try:
            resp = self.sequences_table.get_item(Key={"prefix": f"LASTOK#{identity_key}"}, ConsistentRead=True)
        except ClientError as e:
            raise store_unavailable("sequences", "get_item", e)
        item = resp.get("Item")
        return LoginAttempt.from_item(item["attempt"]) if item and item.get("attempt") else None

    # ——— Login lease ———

    def acquire_lease(self, identity_key: str, owner: str, now: datetime, seconds: int) -> bool:
        """Take the identity's login lease unless another live holder has it."""
        now_epoch = int(now.timestamp())
        try:
            self.sequences_table.put_item(
                Item={"prefix": f"LOGINLEASE#{identity_key}", "leaseOwner": owner,
                      "expiresAt": now_epoch + seconds},
                ConditionExpression="attribute_not_exists(#p) OR expiresAt <= :now",
                ExpressionAttributeNames={"#p": "prefix"},
                ExpressionAttributeValues={":now": now_epoch},
            )
        except ClientError as e:
            if _is_condition_failure(e):
                return False
            raise store_unavailable("sequences", "put_item", e)
        return True

    def release_lease(self, identity_key: str, owner: str) -> None:
        try:
            self.sequences_table.delete_item(
                Key={"prefix": f"LOGINLEASE#{identity_key}"},
                ConditionExpression="leaseOwner = :owner",
                ExpressionAttributeValues={":owner": owner},
            )
        except ClientError as e:
            if _is_condition_failure(e):
                logger.warning("Login lease expired before release and was taken over")
                return
            raise store_unavailable("sequences", "delete_item", e)

    def purge_before(self, cutoff: datetime) -> int:
        """Delete attempts older than ``cutoff``; retention only, never part of a decision."""
        deleted = 0
        scan_kwargs = {"FilterExpression": Attr("attemptedAt").lt(to_iso(cutoff))}
        try:
            with self.table.batch_writer() as batch:
                while True:
                    resp = self.table.scan(**scan_kwargs)
                    for item in resp.get("Items", []) or []:
                        batch.delete_item(Key={"identityKey": item["identityKey"], "attemptKey": item["attemptKey"]})
                        deleted += 1
                    if "LastEvaluatedKey" not in resp:
                        break
                    scan_kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as e:
            raise store_unavailable("login_attempts", "scan", e)
        logger.info(f"Purged {deleted} login attempts older than {to_iso(cutoff)}")
        return deleted

"""
Records the engine reads and appends.

Each record converts to and from the DynamoDB item shape used by its
repository. Items are read defensively (camelCase first, snake_case
fallback) because older rows were written by different tools.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, Optional

from landguard.permissions import (
    ActionType,
    IdentityStatus,
    Permission,
    ResourceType,
    Role,
    parse_action_type,
    parse_resource_type,
    parse_role,
    parse_status,
)
from landguard.utils.json_utils import json_clean, to_dynamo
from landguard.utils.time_utils import parse_iso, to_iso


def _pick(item: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return default


def _id_set(values: Optional[Iterable[Any]]) -> Optional[FrozenSet[str]]:
    if values is None:
        return None
    if isinstance(values, str):
        values = values.split(",")
    return frozenset(str(v).strip() for v in values if str(v).strip())


# ——— Identity ———

@dataclass(frozen=True)
class Identity:
    id: str
    role: Optional[Role]
    status: IdentityStatus = IdentityStatus.ACTIVE
    email: Optional[str] = None

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER

    @property
    def is_active(self) -> bool:
        return self.status == IdentityStatus.ACTIVE

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Identity":
        return cls(
            id=str(_pick(item, "userID", "id")),
            role=parse_role(_pick(item, "role")),
            status=parse_status(_pick(item, "status", "Status")),
            email=_pick(item, "email", "officialEmail"),
        )


@dataclass(frozen=True)
class CredentialRecord:
    """An identity together with the bcrypt hash its password is checked against."""

    identity: Identity
    password_hash: Optional[str]

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "CredentialRecord":
        return cls(identity=Identity.from_item(item), password_hash=_pick(item, "passwordHash", "password_hash"))


# ——— Permission Override ———

@dataclass(frozen=True)
class PermissionOverride:
    identity_id: str
    resource_type: ResourceType
    action_type: ActionType
    granted: bool
    created_by: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def permission(self) -> Permission:
        return Permission(self.resource_type, self.action_type)

    @property
    def sort_key(self) -> str:
        return override_sort_key(self.permission)

    def to_item(self) -> Dict[str, Any]:
        item = {
            "userID": self.identity_id,
            "permissionKey": self.sort_key,
            "resourceType": self.resource_type.value,
            "permissionType": self.action_type.value,
            "granted": self.granted,
        }
        if self.created_by:
            item["createdBy"] = self.created_by
        if self.updated_at:
            item["updatedAt"] = self.updated_at
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> Optional["PermissionOverride"]:
        resource = parse_resource_type(_pick(item, "resourceType", "resource_type"))
        action = parse_action_type(_pick(item, "permissionType", "permission_type", "actionType"))
        if resource is None or action is None:
            return None
        return cls(
            identity_id=str(_pick(item, "userID", "user_id")),
            resource_type=resource,
            action_type=action,
            granted=_pick(item, "granted") is True,
            created_by=_pick(item, "createdBy", "created_by"),
            updated_at=_pick(item, "updatedAt", "updated_at"),
        )


def override_sort_key(permission: Permission) -> str:
    return f"OVR#{permission.resource.value}#{permission.action.value}"


# ——— Resource Scope ———

@dataclass(frozen=True)
class ResourceScope:
    """
    Allow-lists narrowing which instances of one resource type an identity sees.

    ``None`` or an empty set means the dimension is unrestricted.
    """

    identity_id: str
    resource_type: ResourceType = ResourceType.LAND
    allowed_parent_ids: Optional[FrozenSet[str]] = None
    allowed_item_ids: Optional[FrozenSet[str]] = None

    @property
    def restricts_parents(self) -> bool:
        return bool(self.allowed_parent_ids)

    @property
    def restricts_items(self) -> bool:
        return bool(self.allowed_item_ids)

    @property
    def is_unrestricted(self) -> bool:
        return not self.restricts_parents and not self.restricts_items

    @classmethod
    def unrestricted(cls, identity_id: str, resource_type: ResourceType = ResourceType.LAND) -> "ResourceScope":
        return cls(identity_id=identity_id, resource_type=resource_type)

    @classmethod
    def build(cls, identity_id: str, resource_type: ResourceType = ResourceType.LAND,
              allowed_parent_ids: Optional[Iterable[Any]] = None,
              allowed_item_ids: Optional[Iterable[Any]] = None) -> "ResourceScope":
        return cls(
            identity_id=str(identity_id),
            resource_type=resource_type,
            allowed_parent_ids=_id_set(allowed_parent_ids),
            allowed_item_ids=_id_set(allowed_item_ids),
        )

    def to_item(self) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "userID": self.identity_id,
            "resourceType": self.resource_type.value,
        }
        # DynamoDB rejects empty string sets, so empty means "attribute absent".
        if self.allowed_parent_ids:
            item["allowedParentIds"] = set(self.allowed_parent_ids)
        if self.allowed_item_ids:
            item["allowedItemIds"] = set(self.allowed_item_ids)
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "ResourceScope":
        return cls.build(
            identity_id=_pick(item, "userID", "user_id"),
            resource_type=parse_resource_type(_pick(item, "resourceType")) or ResourceType.LAND,
            allowed_parent_ids=_pick(item, "allowedParentIds", "allowed_batches"),
            allowed_item_ids=_pick(item, "allowedItemIds", "allowed_pieces"),
        )


# ——— Login Attempt ———

@dataclass(frozen=True)
class LoginAttempt:
    identity: str
    success: bool
    timestamp: datetime
    source_address: Optional[str] = None
    user_agent: Optional[str] = None
    stage: str = "credential"
    sequence: int = 0

    @property
    def sort_key(self) -> str:
        return f"{to_iso(self.timestamp)}#{self.sequence:010d}"

    def to_item(self) -> Dict[str, Any]:
        item = {
            "identityKey": self.identity,
            "attemptKey": self.sort_key,
            "attemptedAt": to_iso(self.timestamp),
            "success": self.success,
            "stage": self.stage,
            "sequence": self.sequence,
        }
        if self.source_address:
            item["ipAddress"] = self.source_address
        if self.user_agent:
            item["userAgent"] = self.user_agent
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "LoginAttempt":
        return cls(
            identity=str(_pick(item, "identityKey", "email")),
            success=_pick(item, "success") is True,
            timestamp=parse_iso(_pick(item, "attemptedAt", "attempted_at")),
            source_address=_pick(item, "ipAddress", "ip_address"),
            user_agent=_pick(item, "userAgent", "user_agent"),
            stage=_pick(item, "stage", default="credential"),
            sequence=int(_pick(item, "sequence", default=0)),
        )


# ——— Audit Log Entry ———

@dataclass(frozen=True)
class AuditLogEntry:
    actor_id: str
    action: str
    resource_type: str
    resource_id: str
    timestamp: datetime
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    corrects_entry_id: Optional[str] = None
    entry_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_item(self) -> Dict[str, Any]:
        item = {
            "entryId": self.entry_id,
            "actorId": self.actor_id,
            "action": self.action,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "resourceKey": f"{self.resource_type}#{self.resource_id}",
            "createdAt": to_iso(self.timestamp),
        }
        if self.before is not None:
            item["beforeSnapshot"] = to_dynamo(self.before)
        if self.after is not None:
            item["afterSnapshot"] = to_dynamo(self.after)
        if self.corrects_entry_id:
            item["correctsEntryId"] = self.corrects_entry_id
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "AuditLogEntry":
        before = _pick(item, "beforeSnapshot")
        after = _pick(item, "afterSnapshot")
        return cls(
            entry_id=str(_pick(item, "entryId", "id")),
            actor_id=str(_pick(item, "actorId", "user_id")),
            action=_pick(item, "action"),
            resource_type=_pick(item, "resourceType", "entity_type"),
            resource_id=str(_pick(item, "resourceId", "entity_id")),
            timestamp=parse_iso(_pick(item, "createdAt", "created_at")),
            before=json_clean(before) if before is not None else None,
            after=json_clean(after) if after is not None else None,
            corrects_entry_id=_pick(item, "correctsEntryId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return json_clean({
            "entryId": self.entry_id,
            "actorId": self.actor_id,
            "action": self.action,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "timestamp": to_iso(self.timestamp),
            "before": self.before,
            "after": self.after,
            "correctsEntryId": self.corrects_entry_id,
        })

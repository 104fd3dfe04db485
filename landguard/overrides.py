"""
Administration of permission overrides and resource scopes.

Only an identity that passes the decision point for ``manage_users`` on
the target user may change either. Every change goes through the
authoritative gate, so it is audited with before/after snapshots.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional

from landguard.enforcement import AuthoritativeGate
from landguard.errors import UnknownIdentity, ValidationError
from landguard.logging_config import create_logger
from landguard.models.entities import Identity, PermissionOverride, ResourceScope
from landguard.permissions import (
    ActionName,
    ActionType,
    Permission,
    ResourceType,
    parse_action_name,
    parse_resource_type,
)
from landguard.utils.time_utils import to_iso, utc_now

logger = create_logger("roles.overrides")

MANAGE_USERS = Permission(ResourceType.USER, ActionType.MANAGE)


def override_snapshot(override: Optional[PermissionOverride]) -> Optional[Dict[str, Any]]:
    if override is None:
        return None
    return {
        "userID": override.identity_id,
        "resourceType": override.resource_type.value,
        "permissionType": override.action_type.value,
        "granted": override.granted,
    }


def scope_snapshot(scope: Optional[ResourceScope]) -> Optional[Dict[str, Any]]:
    if scope is None or scope.is_unrestricted:
        return None
    return {
        "userID": scope.identity_id,
        "resourceType": scope.resource_type.value,
        "allowedParentIds": sorted(scope.allowed_parent_ids or []),
        "allowedItemIds": sorted(scope.allowed_item_ids or []),
    }


class PermissionAdministration:

    def __init__(self, gate: AuthoritativeGate, identity_store, override_store, scope_store,
                 clock: Callable = utc_now):
        self.gate = gate
        self.identity_store = identity_store
        self.override_store = override_store
        self.scope_store = scope_store
        self.clock = clock

    def _require_target(self, target_id: Any) -> Identity:
        target = self.identity_store.get_identity(str(target_id)) if target_id else None
        if target is None:
            raise UnknownIdentity(f"User {target_id} not found", userID=target_id)
        return target

    @staticmethod
    def _require_permission(action: ActionName) -> Permission:
        permission = parse_action_name(action)
        if permission is None:
            raise ValidationError(f"Unknown action '{action}'", field="action")
        return permission

    @staticmethod
    def _require_resource(resource_type: Any) -> ResourceType:
        resource = parse_resource_type(resource_type)
        if resource is None:
            raise ValidationError(f"Unknown resource type '{resource_type}'", field="resourceType")
        return resource

    def grant_override(self, admin: Identity, target_id: Any, action: ActionName, granted: bool) -> Dict[str, Any]:
        """Create or replace the single override for (target, resource, action)."""
        permission = self._require_permission(action)
        target = self._require_target(target_id)
        before = self.override_store.get_override(target.id, permission)
        override = PermissionOverride(
            identity_id=target.id,
            resource_type=permission.resource,
            action_type=permission.action,
            granted=bool(granted),
            created_by=admin.id,
            updated_at=to_iso(self.clock()),
        )

        def mutation():
            self.override_store.put_override(override)
            return override_snapshot(override)

        after = self.gate.perform(admin, MANAGE_USERS, ResourceType.USER, target.id, mutation,
                                  before=override_snapshot(before))
        logger.info(f"{admin.id} set override {permission} = {override.granted} for {target.id}")
        return after

    def revoke_override(self, admin: Identity, target_id: Any, action: ActionName) -> Optional[Dict[str, Any]]:
        permission = self._require_permission(action)
        target = self._require_target(target_id)
        before = self.override_store.get_override(target.id, permission)

        def mutation():
            self.override_store.delete_override(target.id, permission)
            return None

        self.gate.perform(admin, MANAGE_USERS, ResourceType.USER, target.id, mutation,
                          before=override_snapshot(before))
        logger.info(f"{admin.id} revoked override {permission} for {target.id}")
        return override_snapshot(before)

    def list_overrides(self, admin: Identity, target_id: Any) -> List[Dict[str, Any]]:
        target = self._require_target(target_id)
        self.gate.authorize(admin, MANAGE_USERS, ResourceType.USER, target.id)
        return [override_snapshot(o) for o in self.override_store.list_overrides(target.id)]

    def set_scope(self, admin: Identity, target_id: Any, resource_type: Any,
                  allowed_parent_ids: Optional[Iterable[Any]] = None,
                  allowed_item_ids: Optional[Iterable[Any]] = None) -> Optional[Dict[str, Any]]:
        resource = self._require_resource(resource_type)
        target = self._require_target(target_id)
        before = self.scope_store.get_scope(target.id, resource)
        scope = ResourceScope.build(target.id, resource, allowed_parent_ids, allowed_item_ids)

        def mutation():
            if scope.is_unrestricted:
                self.scope_store.delete_scope(target.id, resource)
            else:
                self.scope_store.put_scope(scope)
            return scope_snapshot(scope)

        after = self.gate.perform(admin, MANAGE_USERS, ResourceType.USER, target.id, mutation,
                                  before=scope_snapshot(before))
        logger.info(f"{admin.id} set {resource.value} scope for {target.id}")
        return after

    def clear_scope(self, admin: Identity, target_id: Any, resource_type: Any) -> None:
        self.set_scope(admin, target_id, resource_type)

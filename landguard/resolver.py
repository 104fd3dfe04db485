"""
Permission resolver: role defaults plus per-identity overrides.
"""
from __future__ import annotations

from typing import Iterable, Optional

from landguard.logging_config import create_logger
from landguard.models.entities import Identity
from landguard.permissions import ActionName, RoleRegistry, parse_action_name

logger = create_logger("core.resolver")


class PermissionResolver:
    """
    Answers "may this identity perform this action at all?".

    Order of precedence:
    1. Owners are always permitted.
    2. Any non-active identity is denied.
    3. An override for the (resource, action) pair replaces the role default.
    4. Otherwise the role default applies; unknown roles and actions deny.

    Each call re-reads the override store, so an edited override takes
    effect on the next call without any cache to invalidate.
    """

    def __init__(self, registry: RoleRegistry, override_store):
        self.registry = registry
        self.override_store = override_store

    def resolve(self, identity: Optional[Identity], action: ActionName) -> bool:
        if identity is None:
            return False
        if identity.is_owner:
            return True
        if not identity.is_active:
            return False

        permission = parse_action_name(action)
        if permission is None:
            logger.info(f"Unknown action '{action}' requested by {identity.id}")
            return False

        try:
            override = self.override_store.get_override(identity.id, permission)
        except Exception:
            logger.exception(f"Override lookup failed for {identity.id}; denying {permission}")
            return False

        if override is not None:
            return override.granted
        return self.registry.permission_for(identity.role, permission)

    def resolve_all(self, identity: Optional[Identity], actions: Iterable[ActionName]) -> bool:
        """True only when every action is permitted (and at least one was asked for)."""
        actions = list(actions)
        return bool(actions) and all(self.resolve(identity, action) for action in actions)

    def resolve_any(self, identity: Optional[Identity], actions: Iterable[ActionName]) -> bool:
        return any(self.resolve(identity, action) for action in actions)

    def effective_permissions(self, identity: Identity) -> dict:
        """Map every permission known to the role table to the resolved answer, for display."""
        known = set()
        for role in self.registry.roles():
            known.update(self.registry.get(role).permissions)
        try:
            known.update(o.permission for o in self.override_store.list_overrides(identity.id))
        except Exception:
            logger.exception(f"Override listing failed for {identity.id}")
        return {p.canonical: self.resolve(identity, p) for p in sorted(known, key=lambda p: p.canonical)}

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from landguard.logging_config import create_logger
from landguard.models.entities import Identity
from landguard.permissions import ActionName, parse_action_name, parse_resource_type
from landguard.resolver import PermissionResolver
from landguard.scope_guard import ResourceScopeGuard

logger = create_logger("core.policy_engine")


class DecisionReason(str, Enum):
    ALLOWED = "Allowed"
    ACTION_NOT_PERMITTED = "ActionNotPermitted"
    SCOPE_VIOLATION = "ScopeViolation"
    UNKNOWN_IDENTITY = "UnknownIdentity"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DecisionReason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": "ALLOW" if self.allowed else "DENY",
            "allowed": self.allowed,
            "reason": self.reason.value,
        }


ALLOW = Decision(True, DecisionReason.ALLOWED)
DENY_ACTION = Decision(False, DecisionReason.ACTION_NOT_PERMITTED)
DENY_SCOPE = Decision(False, DecisionReason.SCOPE_VIOLATION)
DENY_UNKNOWN = Decision(False, DecisionReason.UNKNOWN_IDENTITY)


# ——— Access Request / Evaluation ———

@dataclass(frozen=True)
class AccessRequest:
    identity: Optional[Identity]
    action: ActionName
    resourceType: Any
    resourceId: Any = None
    parentId: Any = None


class PolicyDecisionPoint:
    """
    The single allow/deny function every enforcement layer calls.

    Action permission is checked first; scope is consulted only for an
    action that passed, so scope can narrow but never widen. The function
    reads current store state on every call and keeps no state of its own.
    """

    def __init__(self, resolver: PermissionResolver, scope_guard: ResourceScopeGuard):
        self.resolver = resolver
        self.scope_guard = scope_guard

    def decide(self, identity: Optional[Identity], action: ActionName, resource_type: Any,
               resource_id: Any = None, parent_id: Any = None) -> Decision:
        if identity is None:
            return DENY_UNKNOWN
        if identity.is_owner:
            return ALLOW

        try:
            permitted = self.resolver.resolve(identity, action)
        except Exception:
            logger.exception(f"Permission resolution failed for {identity.id}; failing closed")
            return DENY_ACTION
        if not permitted:
            return DENY_ACTION

        # The action's own resource decides which scope applies when the caller left it out.
        if resource_type is None:
            permission = parse_action_name(action)
            resource_type = permission.resource if permission else None
        if parse_resource_type(resource_type) is None:
            return DENY_ACTION

        try:
            in_scope = self.scope_guard.can_access(identity, resource_type, resource_id, parent_id)
        except Exception:
            logger.exception(f"Scope check failed for {identity.id}; failing closed")
            return DENY_ACTION
        if not in_scope:
            return DENY_SCOPE

        return ALLOW

    def evaluate(self, req: AccessRequest) -> Decision:
        return self.decide(req.identity, req.action, req.resourceType, req.resourceId, req.parentId)

    def decide_parent(self, identity: Optional[Identity], action: ActionName, resource_type: Any,
                      parent_id: Any) -> Decision:
        """Same decision for a parent container ("can I see batch B?"), using the parent scope only."""
        if identity is None:
            return DENY_UNKNOWN
        if identity.is_owner:
            return ALLOW
        try:
            if not self.resolver.resolve(identity, action):
                return DENY_ACTION
            if parse_resource_type(resource_type) is None:
                return DENY_ACTION
            if not self.scope_guard.can_access_parent(identity, resource_type, parent_id):
                return DENY_SCOPE
        except Exception:
            logger.exception(f"Parent decision failed for {identity.id}; failing closed")
            return DENY_ACTION
        return ALLOW

"""
Enforcement layers around the policy decision point.

- ``AdvisoryGate``: UI hints. Never authoritative, may be stale, hides reasons.
- ``AuthoritativeGate``: server-side check right before a mutation or a
  sensitive read; raises typed errors and audits successful mutations.
- ``BackstopGuard``: storage-level last line. It trusts nothing from the
  caller except ids: the identity is re-read from the identity store and
  the parent of an item is looked up through a registered resolver.

All three call the same ``PolicyDecisionPoint.decide``; none re-implements
permission or scope rules.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from landguard.errors import ActionNotPermitted, ScopeViolation, UnknownIdentity
from landguard.logging_config import create_logger
from landguard.models.entities import Identity
from landguard.permissions import ActionName, ResourceType, parse_action_name, parse_resource_type
from landguard.policy_engine import (
    DENY_ACTION,
    DENY_SCOPE,
    DENY_UNKNOWN,
    Decision,
    DecisionReason,
    PolicyDecisionPoint,
)

logger = create_logger("core.enforcement")

GENERIC_DENIAL_MESSAGE = "You do not have permission to perform this action."

DECISION_ERRORS = {
    DecisionReason.ACTION_NOT_PERMITTED: ActionNotPermitted,
    DecisionReason.SCOPE_VIOLATION: ScopeViolation,
    DecisionReason.UNKNOWN_IDENTITY: UnknownIdentity,
}


def action_label(action: ActionName) -> str:
    permission = parse_action_name(action)
    return permission.canonical if permission else str(action)


def raise_for_decision(decision: Decision, action: ActionName, resource_type: Any, resource_id: Any) -> None:
    if decision.allowed:
        return
    error_cls = DECISION_ERRORS.get(decision.reason, ActionNotPermitted)
    raise error_cls(
        f"Not authorized to {action_label(action)} on {resource_type}",
        action=action_label(action),
        resourceType=str(getattr(resource_type, "value", resource_type)),
        resourceId=None if resource_id is None else str(resource_id),
    )


class AdvisoryGate:
    """Answers "should this control be shown?" with no reason attached."""

    def __init__(self, pdp: PolicyDecisionPoint):
        self.pdp = pdp

    def can_render(self, identity: Optional[Identity], action: ActionName, resource_type: Any = None,
                   resource_id: Any = None, parent_id: Any = None) -> bool:
        return self.pdp.decide(identity, action, resource_type, resource_id, parent_id).allowed

    def visible_controls(self, identity: Optional[Identity], actions: Iterable[ActionName]) -> Dict[str, bool]:
        return {action_label(action): self.can_render(identity, action) for action in actions}

    @staticmethod
    def denial_message() -> str:
        return GENERIC_DENIAL_MESSAGE


class AuthoritativeGate:

    def __init__(self, pdp: PolicyDecisionPoint, recorder=None):
        self.pdp = pdp
        self.recorder = recorder

    def authorize(self, identity: Optional[Identity], action: ActionName, resource_type: Any,
                  resource_id: Any = None, parent_id: Any = None) -> Decision:
        decision = self.pdp.decide(identity, action, resource_type, resource_id, parent_id)
        actor = identity.id if identity else None
        if not decision.allowed:
            logger.info(
                f"DENY {actor} {action_label(action)} {resource_type}/{resource_id}: {decision.reason.value}"
            )
        raise_for_decision(decision, action, resource_type, resource_id)
        return decision

    def perform(self, identity: Identity, action: ActionName, resource_type: Any, resource_id: Any,
                mutation: Callable[[], Any], before: Optional[Dict[str, Any]] = None,
                parent_id: Any = None) -> Any:
        """
        Authorize, run ``mutation``, then audit its result.

        Nothing is audited when the mutation raises; the exception propagates.
        """
        self.authorize(identity, action, resource_type, resource_id, parent_id)
        after = mutation()
        if self.recorder is not None:
            self.recorder.record(
                identity.id,
                action_label(action),
                str(getattr(resource_type, "value", resource_type)),
                resource_id,
                before=before,
                after=after if isinstance(after, dict) else None,
            )
        return after


class BackstopGuard:
    """Storage-side re-derivation of the decision from ids alone."""

    def __init__(self, pdp: PolicyDecisionPoint, identity_store):
        self.pdp = pdp
        self.identity_store = identity_store
        self._parent_resolvers: Dict[ResourceType, Callable[[str], Optional[str]]] = {}

    def register_resource_resolver(self, resource_type: Any, resolver_function: Callable[[str], Optional[str]]) -> None:
        """Register how to find the parent id of an item of ``resource_type`` from storage."""
        resource = parse_resource_type(resource_type)
        if resource is None:
            raise ValueError(f"Unknown resource type '{resource_type}'")
        self._parent_resolvers[resource] = resolver_function

    def load_identity(self, identity_id: Any) -> Optional[Identity]:
        if not identity_id:
            return None
        try:
            return self.identity_store.get_identity(str(identity_id))
        except Exception:
            logger.exception(f"Identity lookup failed for {identity_id}; backstop denies")
            return None

    def _lookup_parent(self, resource: ResourceType, resource_id: Any) -> Optional[str]:
        """Parent id from storage; None when no resolver is registered or the item has none."""
        resolver_function = self._parent_resolvers.get(resource)
        if resolver_function is None or resource_id is None:
            return None
        return resolver_function(str(resource_id))

    def _decide_for(self, identity: Identity, action: ActionName, resource: Optional[ResourceType],
                    resource_id: Any, parent_id: Any = None, parent_known: bool = False) -> Decision:
        if identity.is_owner:
            return self.pdp.decide(identity, action, resource, resource_id)
        try:
            permitted = self.pdp.resolver.resolve(identity, action)
        except Exception:
            logger.exception(f"Permission resolution failed for {identity.id}; backstop denies")
            return DENY_ACTION
        if not permitted:
            return DENY_ACTION

        if resource is None:
            permission = parse_action_name(action)
            resource = permission.resource if permission else None
        if resource is None:
            return DENY_ACTION

        scope = self.pdp.scope_guard.load_scope(identity, resource)
        if scope is None:
            return DENY_SCOPE
        if scope.restricts_parents:
            if not parent_known:
                try:
                    parent_id = self._lookup_parent(resource, resource_id)
                except Exception:
                    logger.exception(f"Parent lookup failed for {resource.value}/{resource_id}; backstop denies")
                    return DENY_ACTION
            if parent_id is None:
                # Parent scope exists but the item's parent is unknown.
                return DENY_SCOPE
        return self.pdp.decide(identity, action, resource, resource_id, parent_id)

    def check(self, identity_id: Any, action: ActionName, resource_type: Any, resource_id: Any = None) -> Decision:
        identity = self.load_identity(identity_id)
        if identity is None:
            return DENY_UNKNOWN
        resource = parse_resource_type(resource_type)
        if resource is None and resource_type is not None:
            decision = DENY_ACTION
        else:
            decision = self._decide_for(identity, action, resource, resource_id)
        if not decision.allowed:
            logger.warning(
                f"Backstop DENY {identity_id} {action_label(action)} {resource_type}/{resource_id}: "
                f"{decision.reason.value}"
            )
        return decision

    def check_parent(self, identity_id: Any, action: ActionName, resource_type: Any, parent_id: Any) -> Decision:
        identity = self.load_identity(identity_id)
        if identity is None:
            return DENY_UNKNOWN
        return self.pdp.decide_parent(identity, action, resource_type, parent_id)

    def enforce(self, identity_id: Any, action: ActionName, resource_type: Any, resource_id: Any = None) -> Decision:
        decision = self.check(identity_id, action, resource_type, resource_id)
        raise_for_decision(decision, action, resource_type, resource_id)
        return decision

    def filter_rows(self, identity_id: Any, action: ActionName, resource_type: Any, rows: Iterable[Dict[str, Any]],
                    id_field: str = "id", parent_field: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Drop every row the identity may not see, like a row-level security policy.

        ``parent_field`` names the column holding the parent id on the stored
        row itself; without it the registered resolver is used per row. When the
        identity has a parent scope, a row whose parent stays unknown is dropped.
        """
        identity = self.load_identity(identity_id)
        if identity is None:
            return []
        resource = parse_resource_type(resource_type)
        if resource is None and resource_type is not None:
            return []
        visible = []
        for row in rows:
            if parent_field is not None:
                decision = self._decide_for(identity, action, resource, row.get(id_field),
                                            parent_id=row.get(parent_field), parent_known=True)
            else:
                decision = self._decide_for(identity, action, resource, row.get(id_field))
            if decision.allowed:
                visible.append(row)
        return visible

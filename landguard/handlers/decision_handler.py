"""
Decision routes: answer allow/deny questions for the application layers.
"""
from typing import Any, Dict, Optional

from landguard.engine import AuthorizationEngine
from landguard.errors import UnknownIdentity
from landguard.logging_config import create_logger
from landguard.models.entities import Identity
from landguard.overrides import MANAGE_USERS
from landguard.permissions import ResourceType
from landguard.utils import build_response
from .common import require

logger = create_logger("handlers.decision_handler")


def decision_or_deny(event: Dict[str, Any], engine: AuthorizationEngine, identity: Optional[Identity],
                     action: str, resource_type: Any = None, *, resource_id: Any = None,
                     parent_id: Any = None) -> Optional[Dict[str, Any]]:
    """Evaluate the decision and return a 403 response if denied, else None."""
    decision = engine.decide(identity, action, resource_type, resource_id, parent_id)
    if decision.allowed:
        return None
    logger.info(f"DENY {identity.id if identity else None} {action} {resource_type}/{resource_id}: "
                f"{decision.reason.value}")
    return build_response(event=event, data=decision.to_dict(), status=403,
                          error="Not authorized to perform this action")


def _subject(engine: AuthorizationEngine, caller: Identity, body: Dict[str, Any]) -> Identity:
    """The identity being asked about: the caller, or another user for callers who manage users."""
    subject_id = body.get("userID") or body.get("identityId")
    if not subject_id or str(subject_id) == caller.id:
        return caller
    engine.authoritative.authorize(caller, MANAGE_USERS, ResourceType.USER, subject_id)
    subject = engine.identity(subject_id)
    if subject is None:
        raise UnknownIdentity(f"User {subject_id} not found", userID=subject_id)
    return subject


def handle_decide(event: Dict[str, Any], engine: AuthorizationEngine, caller_id: str,
                  body: Dict[str, Any]) -> Dict[str, Any]:
    """
    POST ``decide``: ``{"permission", "resourceType"?, "resourceId"?, "parentId"?, "userID"?}``.

    Always 200 with the decision; a deny is an answer here, not an error.
    """
    action = require(body, "permission", "actionName")
    caller = engine.identity(caller_id)
    if caller is None:
        raise UnknownIdentity("Caller not found", userID=caller_id)
    subject = _subject(engine, caller, body)

    decision = engine.decide(
        subject,
        action,
        body.get("resourceType"),
        body.get("resourceId"),
        body.get("parentId"),
    )
    data = decision.to_dict()
    data.update({"userID": subject.id, "permission": action})
    return build_response(event=event, data=data, status=200)


def handle_permissions(event: Dict[str, Any], engine: AuthorizationEngine, caller_id: str) -> Dict[str, Any]:
    """GET ``permissions``: the caller's resolved permission map, for showing or hiding controls."""
    caller = engine.identity(caller_id)
    if caller is None:
        raise UnknownIdentity("Caller not found", userID=caller_id)
    return build_response(event=event, data={
        "userID": caller.id,
        "role": caller.role.value if caller.role else None,
        "status": caller.status.value,
        "permissions": engine.effective_permissions(caller),
    }, status=200)

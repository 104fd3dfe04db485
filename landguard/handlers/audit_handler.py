"""
Audit trail routes.
"""
from typing import Any, Dict

from landguard.engine import AuthorizationEngine
from landguard.errors import ActionNotPermitted, UnknownIdentity, ValidationError
from landguard.logging_config import create_logger
from landguard.permissions import ActionType, Permission, ResourceType, parse_action_name, parse_resource_type
from landguard.utils import build_response
from .common import query_params, require

logger = create_logger("handlers.audit_handler")

VIEW_AUDIT_LOGS = Permission(ResourceType.AUDIT_LOG, ActionType.VIEW)


def _snapshot(body: Dict[str, Any], name: str):
    value = body.get(name)
    if value is not None and not isinstance(value, dict):
        raise ValidationError(f"{name} must be an object", field=name)
    return value


def _audited_permission(action: Any) -> Permission:
    permission = parse_action_name(action)
    if permission is None:
        raise ValidationError(f"Unknown audit action '{action}'", field="auditAction")
    return permission


def handle_record_audit(event: Dict[str, Any], engine: AuthorizationEngine, caller_id: str,
                        body: Dict[str, Any]) -> Dict[str, Any]:
    """
    POST ``record-audit``: append one entry with the caller as actor.

    The caller must pass the authoritative check for the audited action on
    that resource. With ``correctsEntryId`` the entry is appended as a
    correction instead, checked against the action of the corrected chain.
    """
    caller = engine.identity(caller_id)
    if caller is None:
        raise UnknownIdentity("Caller not found", userID=caller_id)
    before = _snapshot(body, "before")
    after = _snapshot(body, "after")

    corrects = body.get("correctsEntryId")
    if corrects:
        root = engine.recorder.chain_root(str(corrects))
        if root is None:
            raise ValidationError(f"Audit entry {corrects} not found", entryId=str(corrects))
        permission = parse_action_name(root.action)
        if permission is None:
            raise ActionNotPermitted("Entry cannot be corrected", entryId=str(corrects))
        engine.authoritative.authorize(caller, permission, root.resource_type, root.resource_id)
        entry = engine.recorder.record_correction(str(corrects), caller_id, before=before, after=after)
    else:
        permission = _audited_permission(require(body, "auditAction", "permission"))
        resource_type = require(body, "resourceType")
        resource_id = require(body, "resourceId")
        if parse_resource_type(resource_type) != permission.resource:
            raise ValidationError("resourceType does not match auditAction", field="resourceType")
        engine.authoritative.authorize(caller, permission, resource_type, resource_id)
        entry = engine.record_audit(caller_id, permission.canonical, permission.resource, resource_id,
                                    before=before, after=after)
    return build_response(event=event, data=entry.to_dict(), status=201)


def handle_audit_trail(event: Dict[str, Any], engine: AuthorizationEngine, caller_id: str) -> Dict[str, Any]:
    """GET ``audit-trail&resourceType=...&resourceId=...``; needs ``view_audit_logs``."""
    params = query_params(event)
    resource_type = require(params, "resourceType")
    resource_id = require(params, "resourceId")

    caller = engine.identity(caller_id)
    engine.authoritative.authorize(caller, VIEW_AUDIT_LOGS, ResourceType.AUDIT_LOG)

    entries = engine.audit_trail(resource_type, resource_id)
    return build_response(event=event, data={
        "resourceType": resource_type,
        "resourceId": resource_id,
        "entries": [entry.to_dict() for entry in entries],
    }, status=200)

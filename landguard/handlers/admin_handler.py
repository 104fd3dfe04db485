"""
Override and scope administration routes.
"""
from typing import Any, Dict

from landguard.engine import AuthorizationEngine
from landguard.errors import UnknownIdentity, ValidationError
from landguard.logging_config import create_logger
from landguard.models.entities import Identity
from landguard.utils import build_response
from .common import query_params, require

logger = create_logger("handlers.admin_handler")


def _admin(engine: AuthorizationEngine, caller_id: str) -> Identity:
    admin = engine.identity(caller_id)
    if admin is None:
        raise UnknownIdentity("Caller not found", userID=caller_id)
    return admin


def _granted(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValidationError("granted must be true or false", field="granted")


def handle_grant_override(event: Dict[str, Any], engine: AuthorizationEngine, caller_id: str,
                          body: Dict[str, Any]) -> Dict[str, Any]:
    """POST ``grant-override``: ``{"userID", "permission", "granted"}``."""
    target_id = require(body, "userID")
    permission = require(body, "permission")
    granted = _granted(require(body, "granted"))
    override = engine.administration.grant_override(_admin(engine, caller_id), target_id, permission, granted)
    return build_response(event=event, data={"override": override}, status=200)


def handle_revoke_override(event: Dict[str, Any], engine: AuthorizationEngine, caller_id: str,
                           body: Dict[str, Any]) -> Dict[str, Any]:
    target_id = require(body, "userID")
    permission = require(body, "permission")
    removed = engine.administration.revoke_override(_admin(engine, caller_id), target_id, permission)
    return build_response(event=event, data={"revoked": removed is not None, "override": removed}, status=200)


def handle_list_overrides(event: Dict[str, Any], engine: AuthorizationEngine, caller_id: str) -> Dict[str, Any]:
    target_id = require(query_params(event), "userID")
    overrides = engine.administration.list_overrides(_admin(engine, caller_id), target_id)
    return build_response(event=event, data={"userID": target_id, "overrides": overrides}, status=200)


def handle_set_scope(event: Dict[str, Any], engine: AuthorizationEngine, caller_id: str,
                     body: Dict[str, Any]) -> Dict[str, Any]:
    """
    POST ``set-scope``: ``{"userID", "resourceType", "allowedParentIds"?, "allowedItemIds"?}``.

    Omitting both lists (or sending them empty) clears the scope.
    """
    target_id = require(body, "userID")
    resource_type = require(body, "resourceType")
    parents = body.get("allowedParentIds")
    items = body.get("allowedItemIds")
    for name, value in (("allowedParentIds", parents), ("allowedItemIds", items)):
        if value is not None and not isinstance(value, list):
            raise ValidationError(f"{name} must be a list", field=name)

    scope = engine.administration.set_scope(_admin(engine, caller_id), target_id, resource_type, parents, items)
    return build_response(event=event, data={"userID": target_id, "scope": scope}, status=200)

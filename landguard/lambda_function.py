"""
Main Lambda function handler - entry point for the authorization API.

Routing:
- OPTIONS: CORS preflight
- POST (body ``action``): check-login, issue-captcha (no session needed);
  decide, record-audit, grant-override, revoke-override, set-scope
- GET (query ``action``): login-status (no session needed);
  permissions, audit-trail, list-overrides

Typed engine errors map to their HTTP status; anything else is a 500.
"""
import json
from typing import Any, Dict, Optional

from landguard.engine import AuthorizationEngine, build_default_engine
from landguard.errors import LandGuardError
from landguard.logging_config import create_logger
from landguard.handlers import (
    parse_body,
    query_params,
    extract_caller_identity,
    error_response,
    handle_decide,
    handle_permissions,
    handle_check_login,
    handle_issue_captcha,
    handle_login_status,
    handle_record_audit,
    handle_audit_trail,
    handle_grant_override,
    handle_revoke_override,
    handle_list_overrides,
    handle_set_scope,
)
from landguard.utils import build_response

logger = create_logger("core.lambda_handler")

PUBLIC_POST_ACTIONS = {
    "check-login": handle_check_login,
}
POST_ACTIONS = {
    "decide": handle_decide,
    "record-audit": handle_record_audit,
    "grant-override": handle_grant_override,
    "revoke-override": handle_revoke_override,
    "set-scope": handle_set_scope,
}
GET_ACTIONS = {
    "permissions": handle_permissions,
    "audit-trail": handle_audit_trail,
    "list-overrides": handle_list_overrides,
}

_engine: Optional[AuthorizationEngine] = None


def get_engine() -> AuthorizationEngine:
    """Built on first use and reused while the Lambda container stays warm."""
    global _engine
    if _engine is None:
        _engine = build_default_engine()
    return _engine


def set_engine(engine: Optional[AuthorizationEngine]) -> None:
    global _engine
    _engine = engine


def _route_post(event: Dict[str, Any], engine: AuthorizationEngine) -> Dict[str, Any]:
    body = parse_body(event)
    action = (body.get("action") or "").strip().lower()

    if action in PUBLIC_POST_ACTIONS:
        return PUBLIC_POST_ACTIONS[action](event, engine, body)
    if action == "issue-captcha":
        return handle_issue_captcha(event, engine)
    if action not in POST_ACTIONS:
        return build_response(event=event, error=f"Invalid action '{action}'", status=400)

    caller_id, error_resp = extract_caller_identity(event)
    if error_resp:
        return error_resp
    logger.info(f"POST {action} by user: {caller_id}")
    return POST_ACTIONS[action](event, engine, caller_id, body)


def _route_get(event: Dict[str, Any], engine: AuthorizationEngine) -> Dict[str, Any]:
    action = (query_params(event).get("action") or "").strip().lower()

    if action == "login-status":
        return handle_login_status(event, engine)
    if action not in GET_ACTIONS:
        return build_response(event=event, error=f"Invalid action '{action}'", status=400)

    caller_id, error_resp = extract_caller_identity(event)
    if error_resp:
        return error_resp
    logger.info(f"GET {action} by user: {caller_id}")
    return GET_ACTIONS[action](event, engine, caller_id)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    method = (event.get("httpMethod") or "").upper()

    # --- CORS Preflight ---
    if method == "OPTIONS":
        return build_response(event=event, data={"ok": True}, status=200)

    if method not in {"GET", "POST"}:
        return build_response(event=event, error="Method Not Allowed. Use GET or POST.", status=405)

    try:
        engine = get_engine()
        if method == "POST":
            return _route_post(event, engine)
        return _route_get(event, engine)
    except json.JSONDecodeError:
        return build_response(event=event, error="Invalid JSON body", status=400)
    except LandGuardError as err:
        if err.status >= 500:
            logger.error(f"{err.reason}: {err.message}")
        return error_response(event, err)
    except Exception:
        logger.exception("Unhandled error in lambda_handler")
        return build_response(event=event, error="Internal server error", status=500)

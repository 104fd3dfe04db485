"""
Request parsing shared by the route handlers.
"""
import json
from typing import Any, Dict, Optional, Tuple

from landguard.errors import LandGuardError, ValidationError
from landguard.logging_config import create_logger
from landguard.utils import build_response

logger = create_logger("handlers.common")


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """JSON body as a dict; raises ``json.JSONDecodeError`` for malformed input."""
    body = json.loads(event.get("body") or "{}")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def query_params(event: Dict[str, Any]) -> Dict[str, Any]:
    return event.get("queryStringParameters") or {}


def extract_caller_identity(event: Dict[str, Any]) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """Caller id from the API Gateway authorizer context."""
    authz_ctx = (event.get("requestContext", {}) or {}).get("authorizer", {}) or {}
    caller_id = authz_ctx.get("sub") or authz_ctx.get("user_id")

    if not caller_id:
        return None, build_response(event=event, error="missing user identity", status=401)

    return str(caller_id), None


def request_source(event: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """(source address, user agent) of the request, when API Gateway passed them on."""
    identity_ctx = (event.get("requestContext", {}) or {}).get("identity", {}) or {}
    headers = event.get("headers") or {}
    user_agent = headers.get("User-Agent") or headers.get("user-agent") or identity_ctx.get("userAgent")
    return identity_ctx.get("sourceIp"), user_agent


def require(body: Dict[str, Any], *names: str) -> Any:
    """First non-empty value among ``names``; raises ``ValidationError`` naming the first one."""
    for name in names:
        value = body.get(name)
        if value is not None and str(value).strip() != "":
            return value
    raise ValidationError(f"Missing {names[0]}", field=names[0])


def error_response(event: Dict[str, Any], err: LandGuardError) -> Dict[str, Any]:
    return build_response(event=event, data=err.to_dict(), status=err.status, error=err.message)

"""
Login defense routes. These run before the caller has a session, so no
authorizer identity is expected.
"""
from typing import Any, Dict

from landguard.engine import AuthorizationEngine
from landguard.errors import LandGuardError, ValidationError
from landguard.logging_config import create_logger
from landguard.utils import build_response
from .common import query_params, request_source, require

logger = create_logger("handlers.login_handler")


def handle_check_login(event: Dict[str, Any], engine: AuthorizationEngine, body: Dict[str, Any]) -> Dict[str, Any]:
    """POST ``check-login``: ``{"email", "password", "captcha"?: {"token", "answer"}}``."""
    identifier = require(body, "email", "identifier")
    password = require(body, "password")
    source_address, user_agent = request_source(event)

    result = engine.check_login(
        identifier,
        password,
        captcha_proof=body.get("captcha"),
        source_address=source_address,
        user_agent=user_agent,
    )
    try:
        result.raise_for_outcome()
    except LandGuardError as err:
        data = result.to_dict()
        data["reason"] = err.reason
        return build_response(event=event, data=data, status=err.status, error=err.message)

    return build_response(event=event, data=result.to_dict(), status=200)


def handle_issue_captcha(event: Dict[str, Any], engine: AuthorizationEngine) -> Dict[str, Any]:
    try:
        challenge = engine.issue_captcha()
    except ValueError as e:
        logger.error(str(e))
        return build_response(event=event, error="Captcha is not configured", status=500)
    return build_response(event=event, data=challenge, status=200)


def handle_login_status(event: Dict[str, Any], engine: AuthorizationEngine) -> Dict[str, Any]:
    """GET ``login-status&email=...``: lockout state for the login page."""
    email = query_params(event).get("email")
    if not email or not str(email).strip():
        raise ValidationError("Missing email", field="email")
    return build_response(event=event, data=engine.login_status(email).to_dict(), status=200)

"""
Error taxonomy for authorization and login-defense outcomes.

Every outcome below is terminal from the caller's point of view, except
``LoginInProgress``, which asks the caller to retry shortly.
``StoreUnavailable`` is internal: decisions turn it into a denial, while
the login flow lets it through as a 503 rather than answer unrecorded.
"""
from typing import Optional


class LandGuardError(Exception):
    """Base class carrying a stable reason code."""

    reason = "Error"
    status = 500

    def __init__(self, message: Optional[str] = None, **details):
        super().__init__(message or self.reason)
        self.message = message or self.reason
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "reason": self.reason}
        if self.details:
            body["details"] = self.details
        return body


class ActionNotPermitted(LandGuardError):
    reason = "ActionNotPermitted"
    status = 403


class ScopeViolation(LandGuardError):
    reason = "ScopeViolation"
    status = 403


class AccountLocked(LandGuardError):
    reason = "AccountLocked"
    status = 423


class CaptchaRequired(LandGuardError):
    reason = "CaptchaRequired"
    status = 428


class InvalidCredential(LandGuardError):
    reason = "InvalidCredential"
    status = 401


class UnknownIdentity(LandGuardError):
    reason = "UnknownIdentity"
    status = 404


class LoginInProgress(LandGuardError):
    """Another request holds the login lease for this identity."""

    reason = "LoginInProgress"
    status = 429


class ValidationError(LandGuardError):
    reason = "ValidationError"
    status = 400


class StoreUnavailable(LandGuardError):
    """A collaborator store could not be read or written."""

    reason = "StoreUnavailable"
    status = 503

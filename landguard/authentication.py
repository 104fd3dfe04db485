"""
Login check guarded by the lockout controller.

Order per attempt, all under the identity's lock and login lease:
1. Locked        -> reject without looking at the credential.
2. Captcha state -> reject unless a valid challenge solution came along.
3. Credential    -> bcrypt check against the stored hash.

Every attempt is appended to the ledger, whichever step ended it. If the
append fails the error propagates and no verdict is returned.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import bcrypt

from landguard.config import ACCESS_TOKEN_EXPIRY
from landguard.errors import AccountLocked, CaptchaRequired, InvalidCredential, ValidationError
from landguard.logging_config import create_logger
from landguard.lockout import LockoutController, LockoutState, normalize_identity
from landguard.models.entities import Identity
from landguard.utils.token_utils import generate_token

logger = create_logger("core.authentication")


class LoginOutcome(str, Enum):
    ALLOWED = "Allowed"
    CAPTCHA_REQUIRED = "CaptchaRequired"
    LOCKED = "Locked"
    INVALID_CREDENTIAL = "InvalidCredential"


OUTCOME_ERRORS = {
    LoginOutcome.CAPTCHA_REQUIRED: CaptchaRequired,
    LoginOutcome.LOCKED: AccountLocked,
    LoginOutcome.INVALID_CREDENTIAL: InvalidCredential,
}

GENERIC_CREDENTIAL_MESSAGE = "Invalid email or password"


@dataclass(frozen=True)
class LoginResult:
    outcome: LoginOutcome
    identity_key: str
    failed_count: int
    state: LockoutState
    identity: Optional[Identity] = None
    access_token: Optional[str] = None
    challenge: Optional[Dict[str, Any]] = None

    @property
    def allowed(self) -> bool:
        return self.outcome == LoginOutcome.ALLOWED

    def raise_for_outcome(self) -> None:
        error_cls = OUTCOME_ERRORS.get(self.outcome)
        if error_cls is not None:
            message = GENERIC_CREDENTIAL_MESSAGE if error_cls is InvalidCredential else None
            raise error_cls(message, failedAttempts=self.failed_count)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "outcome": self.outcome.value,
            "state": self.state.value,
            "failedAttempts": self.failed_count,
            "requiresCaptcha": self.state == LockoutState.CAPTCHA_REQUIRED,
        }
        if self.identity is not None:
            data["userID"] = self.identity.id
            data["role"] = self.identity.role.value if self.identity.role else None
            data["status"] = self.identity.status.value
        if self.access_token:
            data["accessToken"] = self.access_token
        if self.challenge:
            data["captcha"] = self.challenge
        return data


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        logger.error("Stored password hash is malformed")
        return False


class LoginService:

    def __init__(self, identity_store, controller: LockoutController, captcha=None,
                 token_secret: Optional[str] = None, token_minutes: int = ACCESS_TOKEN_EXPIRY):
        self.identity_store = identity_store
        self.controller = controller
        self.captcha = captcha
        self.token_secret = token_secret
        self.token_minutes = token_minutes

    def _record(self, key: str, success: bool, stage: str, source_address: Optional[str],
                user_agent: Optional[str]) -> None:
        """Append the attempt. An append failure propagates: no verdict leaves without its ledger row."""
        try:
            self.controller.record_attempt(key, success, source_address=source_address,
                                           user_agent=user_agent, stage=stage)
        except Exception:
            logger.exception(f"Could not append {stage} attempt to the login ledger")
            raise

    def _captcha_ok(self, captcha_proof: Any) -> bool:
        if self.captcha is None or captcha_proof is None:
            return False
        return self.captcha.verify(captcha_proof)

    def _result(self, outcome: LoginOutcome, key: str, identity: Optional[Identity] = None,
                access_token: Optional[str] = None, challenge: Optional[Dict[str, Any]] = None) -> LoginResult:
        status = self.controller.status(key)
        return LoginResult(
            outcome=outcome,
            identity_key=key,
            failed_count=status.failed_count,
            state=status.state,
            identity=identity,
            access_token=access_token,
            challenge=challenge,
        )

    def check_login(self, identifier: Any, credential_proof: Any, captcha_proof: Any = None,
                    source_address: Optional[str] = None, user_agent: Optional[str] = None) -> LoginResult:
        key = normalize_identity(identifier)
        if not key:
            raise ValidationError("Email is required", field="identifier")
        if not credential_proof or not str(credential_proof).strip():
            raise ValidationError("Password is required", field="password")

        with self.controller.exclusive(key):
            state = self.controller.state_for(key)

            # Locked and captcha rejections are appended as failures too, so retrying
            # during a lock keeps the window full and pushes unlock_at later.
            if state == LockoutState.LOCKED:
                logger.warning("Login rejected: account locked")
                self._record(key, False, "locked", source_address, user_agent)
                return self._result(LoginOutcome.LOCKED, key)

            if state == LockoutState.CAPTCHA_REQUIRED and not self._captcha_ok(captcha_proof):
                logger.warning("Login rejected: captcha required")
                self._record(key, False, "captcha", source_address, user_agent)
                challenge = self.captcha.issue_challenge() if self.captcha else None
                return self._result(LoginOutcome.CAPTCHA_REQUIRED, key, challenge=challenge)

            try:
                record = self.identity_store.find_credentials(key)
            except Exception:
                self._record(key, False, "error", source_address, user_agent)
                raise

            if record is None:
                logger.info("Login failed: unknown identity")
                self._record(key, False, "unknown_identity", source_address, user_agent)
                return self._result(LoginOutcome.INVALID_CREDENTIAL, key)

            if not verify_password(str(credential_proof), record.password_hash):
                logger.info(f"Login failed: bad credential for {record.identity.id}")
                self._record(key, False, "credential", source_address, user_agent)
                return self._result(LoginOutcome.INVALID_CREDENTIAL, key)

            self._record(key, True, "credential", source_address, user_agent)

        identity = record.identity
        access_token = None
        if self.token_secret:
            access_token = generate_token(
                self.token_secret,
                identity.id,
                identity.email,
                identity.role.value if identity.role else "",
                minutes=self.token_minutes,
                now=self.controller.clock(),
            )
        logger.info(f"Login succeeded for {identity.id}")
        return self._result(LoginOutcome.ALLOWED, key, identity=identity, access_token=access_token)

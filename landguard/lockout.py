"""
Login attempt ledger access and lockout state derivation.

State is never stored. It is recomputed on each request from the
number of failed attempts inside the trailing window:

    failures >= LOCKOUT_THRESHOLD  -> Locked
    failures >= CAPTCHA_THRESHOLD  -> CaptchaRequired
    otherwise                      -> Clean

Old attempts are excluded from the count, not deleted; deleting them is
the separate retention task ``purge_expired_attempts``.
"""
from __future__ import annotations

import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from landguard.config import (
    ATTEMPT_RETENTION_DAYS,
    CAPTCHA_THRESHOLD,
    LOCKOUT_THRESHOLD,
    LOCKOUT_WINDOW_MINUTES,
    LOGIN_LEASE_RETRIES,
    LOGIN_LEASE_SECONDS,
)
from landguard.errors import LoginInProgress
from landguard.logging_config import create_logger
from landguard.models.entities import LoginAttempt
from landguard.utils.time_utils import to_iso, utc_now

logger = create_logger("core.lockout")


class LockoutState(str, Enum):
    CLEAN = "Clean"
    CAPTCHA_REQUIRED = "CaptchaRequired"
    LOCKED = "Locked"


def normalize_identity(value: Any) -> str:
    """Ledger key for a login identifier: trimmed and lower-cased."""
    return str(value or "").strip().lower()


@dataclass(frozen=True)
class LockoutStatus:
    identity: str
    state: LockoutState
    failed_count: int
    remaining_attempts: int
    unlock_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    failures_since_last_success: int = 0
    ledger_available: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "state": self.state.value,
            "failedAttempts": self.failed_count,
            "remainingAttempts": self.remaining_attempts,
            "requiresCaptcha": self.state == LockoutState.CAPTCHA_REQUIRED,
            "unlockAt": to_iso(self.unlock_at) if self.unlock_at else None,
            "lastSuccessAt": to_iso(self.last_success_at) if self.last_success_at else None,
            "failuresSinceLastSuccess": self.failures_since_last_success,
            "ledgerAvailable": self.ledger_available,
        }


class KeyedLocks:
    """One re-entrant lock per identity key, so work for one identity runs one request at a time."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, key: str):
        lock = self._lock_for(key)
        with lock:
            yield


class LockoutController:

    def __init__(self, ledger, clock: Callable[[], datetime] = utc_now,
                 window_minutes: int = LOCKOUT_WINDOW_MINUTES,
                 lock_threshold: int = LOCKOUT_THRESHOLD,
                 captcha_threshold: int = CAPTCHA_THRESHOLD,
                 retention_days: int = ATTEMPT_RETENTION_DAYS,
                 lease_seconds: int = LOGIN_LEASE_SECONDS,
                 lease_retries: int = LOGIN_LEASE_RETRIES,
                 lease_retry_delay: float = 0.1):
        if not 0 < captcha_threshold <= lock_threshold:
            raise ValueError("captcha_threshold must be positive and not above lock_threshold")
        self.ledger = ledger
        self.clock = clock
        self.window = timedelta(minutes=window_minutes)
        self.lock_threshold = lock_threshold
        self.captcha_threshold = captcha_threshold
        self.retention = timedelta(days=retention_days)
        self.lease_seconds = lease_seconds
        self.lease_retries = max(lease_retries, 1)
        self.lease_retry_delay = lease_retry_delay
        self._locks = KeyedLocks()

    @contextmanager
    def hold(self, identity: Any):
        """Serialize read-check-append sequences for one identity inside this process."""
        with self._locks.hold(normalize_identity(identity)):
            yield

    def _acquire_lease(self, key: str, owner: str) -> bool:
        for attempt in range(self.lease_retries):
            if self.ledger.acquire_lease(key, owner, self.clock(), self.lease_seconds):
                return True
            if attempt < self.lease_retries - 1:
                time.sleep(self.lease_retry_delay)
        return False

    @contextmanager
    def exclusive(self, identity: Any):
        """
        Hold the identity across every instance sharing the ledger.

        The in-process lock comes first, then a lease row in the store, so
        only one read-check-append login sequence per identity runs at a
        time anywhere. Raises ``LoginInProgress`` when the lease stays taken.
        """
        key = normalize_identity(identity)
        with self.hold(key):
            owner = uuid.uuid4().hex
            if not self._acquire_lease(key, owner):
                logger.warning("Login lease busy; rejecting concurrent attempt")
                raise LoginInProgress("Another login for this account is in progress; retry shortly")
            try:
                yield
            finally:
                try:
                    self.ledger.release_lease(key, owner)
                except Exception:
                    # The lease expires on its own after lease_seconds.
                    logger.exception("Could not release login lease")

    def classify(self, failed_count: int) -> LockoutState:
        if failed_count >= self.lock_threshold:
            return LockoutState.LOCKED
        if failed_count >= self.captcha_threshold:
            return LockoutState.CAPTCHA_REQUIRED
        return LockoutState.CLEAN

    def recent_failures(self, identity: Any, now: Optional[datetime] = None) -> List[LoginAttempt]:
        """Failures strictly inside the trailing window, oldest first. Raises if the ledger is unreadable."""
        now = now or self.clock()
        window_start = now - self.window
        attempts = self.ledger.list_since(normalize_identity(identity), window_start)
        failures = [a for a in attempts if not a.success and window_start < a.timestamp <= now]
        return sorted(failures, key=lambda a: (a.timestamp, a.sequence))

    def failed_count(self, identity: Any) -> int:
        return len(self.recent_failures(identity))

    def state_for(self, identity: Any) -> LockoutState:
        """Current state; an unreadable ledger reads as Locked."""
        try:
            return self.classify(self.failed_count(identity))
        except Exception:
            logger.exception("Login ledger unreadable; treating identity as locked")
            return LockoutState.LOCKED

    def status(self, identity: Any) -> LockoutStatus:
        key = normalize_identity(identity)
        now = self.clock()
        try:
            failures = self.recent_failures(key, now)
            last_success = self.ledger.latest_success(key)
        except Exception:
            logger.exception("Login ledger unreadable; reporting identity as locked")
            return LockoutStatus(
                identity=key,
                state=LockoutState.LOCKED,
                failed_count=self.lock_threshold,
                remaining_attempts=0,
                ledger_available=False,
            )

        count = len(failures)
        state = self.classify(count)
        unlock_at = None
        if state == LockoutState.LOCKED:
            # Unlocks when enough of the oldest failures age out to drop below the threshold.
            unlock_at = failures[count - self.lock_threshold].timestamp + self.window

        last_success_at = last_success.timestamp if last_success else None
        since_success = [f for f in failures if last_success_at is None or f.timestamp > last_success_at]

        return LockoutStatus(
            identity=key,
            state=state,
            failed_count=count,
            remaining_attempts=max(self.lock_threshold - count, 0),
            unlock_at=unlock_at,
            last_success_at=last_success_at,
            failures_since_last_success=len(since_success),
        )

    def record_attempt(self, identity: Any, success: bool, source_address: Optional[str] = None,
                       user_agent: Optional[str] = None, stage: str = "credential") -> LoginAttempt:
        attempt = LoginAttempt(
            identity=normalize_identity(identity),
            success=success,
            timestamp=self.clock(),
            source_address=source_address,
            user_agent=user_agent,
            stage=stage,
        )
        with self.hold(attempt.identity):
            return self.ledger.append(attempt)

    def clear(self, identity: Any, source_address: Optional[str] = None) -> LoginAttempt:
        """
        Append a success marker.

        Failures stay in the ledger and keep counting toward lockout until
        they leave the window; the marker only resets what the UI shows.
        """
        return self.record_attempt(identity, True, source_address=source_address, stage="reset")

    def purge_expired_attempts(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or self.clock()) - self.retention
        return self.ledger.purge_before(cutoff)

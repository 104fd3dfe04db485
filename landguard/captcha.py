"""
Signed arithmetic challenge for logins that crossed the captcha threshold.

The server keeps no challenge state: the question's answer travels inside
an HS256 token as an HMAC digest bound to a random nonce. A solved nonce
is remembered for the token's lifetime so one solution cannot be replayed
within this process.
"""
from __future__ import annotations

import hashlib
import hmac
import random
import secrets
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import jwt

from landguard.config import CAPTCHA_TTL_MINUTES, JWT_ALGORITHM
from landguard.logging_config import create_logger
from landguard.utils.time_utils import to_iso, utc_now

logger = create_logger("core.captcha")

CAPTCHA_PURPOSE = "captcha"


class CaptchaService:

    def __init__(self, secret: str, ttl_minutes: int = CAPTCHA_TTL_MINUTES,
                 clock: Callable[[], datetime] = utc_now, rng: Optional[random.Random] = None):
        if not secret:
            raise ValueError("A signing secret is required for captcha challenges")
        self.secret = secret
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock
        self.rng = rng or random.SystemRandom()
        self._lock = threading.Lock()
        self._used: Dict[str, float] = {}

    def _digest(self, nonce: str, answer: int) -> str:
        return hmac.new(self.secret.encode(), f"{nonce}:{answer}".encode(), hashlib.sha256).hexdigest()

    def issue_challenge(self) -> Dict[str, Any]:
        first, second = self.rng.randint(1, 10), self.rng.randint(1, 10)
        nonce = secrets.token_hex(8)
        now = self.clock()
        expires = now + self.ttl
        payload = {
            "purpose": CAPTCHA_PURPOSE,
            "nonce": nonce,
            "digest": self._digest(nonce, first + second),
            "iat": int(now.timestamp()),
            "exp": int(expires.timestamp()),
        }
        return {
            "question": f"{first} + {second}",
            "token": jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM),
            "expiresAt": to_iso(expires),
        }

    def verify(self, proof: Any) -> bool:
        """``proof`` is ``{"token": <issued token>, "answer": <number>}``."""
        if not isinstance(proof, dict):
            return False
        token, answer = proof.get("token"), proof.get("answer")
        if not token or answer is None:
            return False

        try:
            # Expiry is checked against the injected clock below.
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[JWT_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError:
            logger.info("Rejected captcha proof with an invalid token")
            return False

        now_ts = self.clock().timestamp()
        if payload.get("purpose") != CAPTCHA_PURPOSE or int(payload.get("exp", 0)) < now_ts:
            return False

        try:
            answer_value = int(str(answer).strip())
        except ValueError:
            return False

        nonce = str(payload.get("nonce", ""))
        if not hmac.compare_digest(self._digest(nonce, answer_value), str(payload.get("digest", ""))):
            return False

        with self._lock:
            self._used = {n: exp for n, exp in self._used.items() if exp >= now_ts}
            if nonce in self._used:
                logger.info("Rejected replayed captcha proof")
                return False
            self._used[nonce] = float(payload["exp"])
        return True

"""
Access token utilities.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt

from landguard.config import ACCESS_TOKEN_EXPIRY, JWT_ALGORITHM
from landguard.utils.time_utils import utc_now


def generate_token(secret: str, identity_id: str, email: Optional[str], role: str,
                   minutes: int = ACCESS_TOKEN_EXPIRY, now: Optional[datetime] = None) -> str:
    """Sign an HS256 access token for an authenticated identity."""
    issued = now or utc_now()
    payload = {
        "sub": identity_id,
        "email": email,
        "role": role,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(secret: str, token: str) -> Dict[str, Any]:
    """Decode and verify an access token; raises ``jwt.InvalidTokenError`` on failure."""
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])

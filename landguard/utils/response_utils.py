"""
Response utilities for API responses and CORS handling.
"""
import json
from typing import Any, Dict, Optional

from landguard.config import ALLOWED_ORIGINS
from landguard.utils.json_utils import json_clean


def get_cors_headers(event: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Get CORS headers based on request origin."""
    headers = (event or {}).get("headers") or {}
    origin = (headers.get("origin") or headers.get("Origin") or "").rstrip("/")
    cors_origin = origin if origin in ALLOWED_ORIGINS else "null"
    return {
        "Access-Control-Allow-Origin": cors_origin,
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
        "Access-Control-Allow-Methods": "OPTIONS,POST,GET",
        "Access-Control-Allow-Credentials": "true",
        "Content-Type": "application/json",
    }


def build_response(event: Optional[Dict[str, Any]] = None, data: Any = None, *,
                   status: int = 200, error: Optional[str] = None) -> Dict[str, Any]:
    """
    Build a standard API response with CORS headers and JSON body.
    """
    headers = get_cors_headers(event)

    if error:
        body = {"error": error}
        if isinstance(data, dict):
            body.update(data)
        if status == 200:
            status = 400
    else:
        body = data or {}

    return {
        "statusCode": status,
        "headers": headers,
        "body": json.dumps(json_clean(body), default=str),
    }

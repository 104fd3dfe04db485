"""
Utilities package for common helper functions.
"""
from .response_utils import get_cors_headers, build_response
from .time_utils import utc_now, now_iso, to_iso, parse_iso
from .token_utils import generate_token, decode_token
from .json_utils import json_clean, to_dynamo

__all__ = [
    'get_cors_headers',
    'build_response',
    'utc_now',
    'now_iso',
    'to_iso',
    'parse_iso',
    'generate_token',
    'decode_token',
    'json_clean',
    'to_dynamo'
]

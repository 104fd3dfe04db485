"""
Handlers package for request routing and validation.
"""
from .common import (
    parse_body,
    query_params,
    extract_caller_identity,
    request_source,
    error_response
)
from .decision_handler import decision_or_deny, handle_decide, handle_permissions
from .login_handler import handle_check_login, handle_issue_captcha, handle_login_status
from .audit_handler import handle_record_audit, handle_audit_trail
from .admin_handler import (
    handle_grant_override,
    handle_revoke_override,
    handle_list_overrides,
    handle_set_scope
)

__all__ = [
    'parse_body',
    'query_params',
    'extract_caller_identity',
    'request_source',
    'error_response',
    'decision_or_deny',
    'handle_decide',
    'handle_permissions',
    'handle_check_login',
    'handle_issue_captcha',
    'handle_login_status',
    'handle_record_audit',
    'handle_audit_trail',
    'handle_grant_override',
    'handle_revoke_override',
    'handle_list_overrides',
    'handle_set_scope'
]

import os

# ========= CONFIGURATION =========
TABLE_CONFIG = {
    "identities":     os.environ.get("IDENTITIES_TABLE",     "dev.Users.ddb-table"),
    "identity_email_index": os.environ.get("IDENTITY_EMAIL_INDEX", "GSI_Email"),  # GSI on 'email'
    "overrides":      os.environ.get("OVERRIDES_TABLE",      "dev.UserPermissions.ddb-table"),
    "scopes":         os.environ.get("SCOPES_TABLE",         "dev.ResourceScopes.ddb-table"),
    "roles":          os.environ.get("ROLES_TABLE",          "dev.Roles.ddb-table"),
    "login_attempts": os.environ.get("LOGIN_ATTEMPTS_TABLE", "dev.LoginAttempts.ddb-table"),
    "audit_logs":     os.environ.get("AUDIT_LOGS_TABLE",     "dev.AuditLogs.ddb-table"),
    "sequences":      os.environ.get("SEQUENCES_TABLE",      "dev.Sequences.ddb-table"),
}

AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")

# ========= LOGIN DEFENSE =========
LOCKOUT_WINDOW_MINUTES = int(os.environ.get("LOCKOUT_WINDOW_MINUTES", "15"))
LOCKOUT_THRESHOLD      = int(os.environ.get("LOCKOUT_THRESHOLD", "5"))
CAPTCHA_THRESHOLD      = int(os.environ.get("CAPTCHA_THRESHOLD", "3"))
ATTEMPT_RETENTION_DAYS = int(os.environ.get("ATTEMPT_RETENTION_DAYS", "30"))
CAPTCHA_TTL_MINUTES    = int(os.environ.get("CAPTCHA_TTL_MINUTES", "5"))
LOGIN_LEASE_SECONDS    = int(os.environ.get("LOGIN_LEASE_SECONDS", "10"))   # cross-instance login lease
LOGIN_LEASE_RETRIES    = int(os.environ.get("LOGIN_LEASE_RETRIES", "5"))

# ========= TOKENS =========
JWT_SECRET           = os.environ.get("JWT_SECRET")
JWT_ALGORITHM        = "HS256"
ACCESS_TOKEN_EXPIRY  = int(os.environ.get("ACCESS_TOKEN_EXPIRY", "1440"))   # minutes → 24 hours

# ========= HTTP =========
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

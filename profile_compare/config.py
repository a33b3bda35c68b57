import logging
import os

logger = logging.getLogger(__name__)

# ── Salesforce connected app ──────────────────────────
SF_CLIENT_ID = os.getenv("SF_CLIENT_ID", "")
SF_CLIENT_SECRET = os.getenv("SF_CLIENT_SECRET", "")
SF_CALLBACK_URL = os.getenv("SF_CALLBACK_URL", "http://localhost:3001/auth/callback")
SF_LOGIN_URL = os.getenv("SF_LOGIN_URL", "https://login.salesforce.com")
SF_SANDBOX_LOGIN_URL = os.getenv("SF_SANDBOX_LOGIN_URL", "https://test.salesforce.com")

# ── Salesforce API ────────────────────────────────────
SF_API_VERSION = os.getenv("SF_API_VERSION", "v59.0")
SF_API_TIMEOUT = float(os.getenv("SF_API_TIMEOUT", "120"))
# IDs per name-lookup query; larger IN clauses hit "URI Too Long"
NAME_LOOKUP_BATCH_SIZE = int(os.getenv("NAME_LOOKUP_BATCH_SIZE", "100"))

# Comma-separated PermissionSet boolean fields. Empty means describe at runtime.
SYSTEM_PERMISSION_FIELDS = [
    f.strip()
    for f in os.getenv("SYSTEM_PERMISSION_FIELDS", "").split(",")
    if f.strip()
]
FALLBACK_PERMISSION_FIELDS = [
    "PermissionsApiEnabled",
    "PermissionsViewSetup",
    "PermissionsModifyAllData",
    "PermissionsViewAllData",
    "PermissionsManageUsers",
]

# ── Web / session ─────────────────────────────────────
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3001"))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
JWT_SECRET = os.getenv("JWT_SECRET", "super-secret-jwt-key-change-in-production")
JWT_ALGORITHM = "HS256"
SESSION_COOKIE_NAME = "sf_session"
OAUTH_STATE_COOKIE_NAME = "sf_oauth_state"
SESSION_EXPIRATION_MINUTES = int(os.getenv("SESSION_EXPIRATION_MINUTES", "1440"))
OAUTH_STATE_TTL_SECONDS = int(os.getenv("OAUTH_STATE_TTL_SECONDS", "600"))
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

# 32 hex chars = 16 bytes (AES-128-GCM key)
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "0123456789abcdef0123456789abcdef")

# ── Comparison limits ─────────────────────────────────
MIN_COMPARE_PROFILES = 2
MAX_COMPARE_PROFILES = 10


def validate_config() -> None:
    """Warn about missing connected-app credentials."""
    missing = [
        name
        for name, value in (
            ("SF_CLIENT_ID", SF_CLIENT_ID),
            ("SF_CLIENT_SECRET", SF_CLIENT_SECRET),
        )
        if not value
    ]
    if missing:
        logger.warning(
            "Missing required environment variables: %s", ", ".join(missing)
        )

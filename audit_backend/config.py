# audit_backend/config.py
"""
Process configuration, read once from the environment.

The .env file is loaded by the entry points (audit_backend.app, api/index.py)
before this module is imported.

Env vars:
- DATABASE_URL — SQLAlchemy URL of the primary store; empty disables it
- FALLBACK_FILE (default: data/audit_requests.json)
- DEFAULT_PAGE_LIMIT (default: 10)
- MAX_PAGE_LIMIT (default: 100) — larger `limit` values are clamped to it
- EMAIL_HOST, EMAIL_PORT (587), EMAIL_USER, EMAIL_PASSWORD, EMAIL_FROM
- EMAIL_USE_TLS (default: true), EMAIL_TIMEOUT (default: 10 seconds)
- ADMIN_EMAIL — recipient of new-request alerts
- ADMIN_AUTH_ENABLED (default: false), ADMIN_KEY
- SUBMIT_RATE_LIMIT_PER_MINUTE (default: 0, disabled)
- HOST (default: 0.0.0.0), PORT (default: 3000)
"""

import os
import pathlib


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


ROOT = pathlib.Path(__file__).resolve().parents[1]

# Primary store
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()

# Fallback store
FALLBACK_FILE = os.getenv("FALLBACK_FILE", str(ROOT / "data" / "audit_requests.json"))

DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "10"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "100"))

# Email transport
EMAIL_HOST = os.getenv("EMAIL_HOST", "").strip()
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USER = os.getenv("EMAIL_USER", "").strip()
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", EMAIL_USER)
EMAIL_USE_TLS = _flag("EMAIL_USE_TLS", "true")
EMAIL_TIMEOUT = float(os.getenv("EMAIL_TIMEOUT", "10"))
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "").strip()

# Admin guard + submission throttling
ADMIN_AUTH_ENABLED = _flag("ADMIN_AUTH_ENABLED", "false")
ADMIN_KEY = os.getenv("ADMIN_KEY", "")
SUBMIT_RATE_LIMIT_PER_MINUTE = int(os.getenv("SUBMIT_RATE_LIMIT_PER_MINUTE", "0"))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))

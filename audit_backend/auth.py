# audit_backend/auth.py
"""
Admin bearer-token guard and submission rate-limiter.

Env vars (see audit_backend.config):
- ADMIN_AUTH_ENABLED (default: false) — require a bearer token on admin operations
- ADMIN_KEY — the accepted bearer token
- SUBMIT_RATE_LIMIT_PER_MINUTE (default: 0) — per-client POST limit; 0 disables
"""

import hmac
import time
import threading
from typing import Optional, Tuple, Dict

from audit_backend import config

ADMIN_AUTH_ENABLED = config.ADMIN_AUTH_ENABLED
ADMIN_KEY = config.ADMIN_KEY
SUBMIT_RATE_LIMIT_PER_MINUTE = config.SUBMIT_RATE_LIMIT_PER_MINUTE


class InMemoryFixedWindowLimiter:
    """Per-process fixed-window counter keyed by client address.

    Counters from earlier windows are dropped the first time a request lands
    in a new window, so the map only ever holds clients seen this minute.
    """

    def __init__(self, limit_per_minute: int = 60):
        self.limit = limit_per_minute
        self._store: Dict[str, Tuple[int, int]] = {}  # client -> (window_minute, count)
        self._window = -1
        self._lock = threading.Lock()

    def _sweep(self, window: int) -> None:
        if window == self._window:
            return
        self._window = window
        self._store = {k: v for k, v in self._store.items() if v[0] == window}

    def allow_request(self, key: str) -> Tuple[bool, Optional[int]]:
        window = int(time.time()) // 60
        with self._lock:
            self._sweep(window)
            wstart, count = self._store.get(key, (window, 0))
            if wstart != window:
                count = 0
            if count >= self.limit:
                return False, 0
            self._store[key] = (window, count + 1)
            return True, self.limit - (count + 1)

    def reset(self):
        with self._lock:
            self._store.clear()
            self._window = -1


_rate_limiter = InMemoryFixedWindowLimiter(SUBMIT_RATE_LIMIT_PER_MINUTE)


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def is_admin_authorized(authorization: Optional[str]) -> bool:
    """Check the Authorization header. Always True while the guard is disabled."""
    if not ADMIN_AUTH_ENABLED:
        return True
    token = bearer_token(authorization)
    if not token or not ADMIN_KEY:
        return False
    return hmac.compare_digest(token, ADMIN_KEY)


def check_submit_rate_limit(client_key: str) -> Tuple[bool, Optional[int]]:
    """Check and consume submission quota. Returns (allowed, remaining)."""
    if _rate_limiter.limit <= 0:
        return True, None
    return _rate_limiter.allow_request(client_key or "unknown")


def get_limiter() -> InMemoryFixedWindowLimiter:
    """Return the current limiter instance (for testing)."""
    return _rate_limiter

# audit_backend/monitoring.py
"""
Logging and metrics for the audit API.

One JSON logger ("audit-backend") shared by every module, Prometheus counters
for submissions, validation rejects, store fallbacks and notification
outcomes, plus request latency. Sentry is only initialised when a DSN is set.
The inc_*/observe_* helpers swallow metric errors so they never fail a request.

Env vars:
- PROMETHEUS_ENABLED (default: true)
- SENTRY_DSN (optional)
- LOG_AS_JSON (default: true)
- LOG_LEVEL (default: INFO)
- ENVIRONMENT (default: development)
"""

import os
import logging
import time
from typing import Tuple

import sentry_sdk
from pythonjsonlogger import jsonlogger
from prometheus_client import (
    Counter, Histogram,
    generate_latest, CONTENT_TYPE_LATEST, REGISTRY,
)

# --- ENV flags
PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_ENABLED", "true").lower() in ("1", "true", "yes")
SENTRY_DSN = os.getenv("SENTRY_DSN", None)
LOG_AS_JSON = os.getenv("LOG_AS_JSON", "true").lower() in ("1", "true", "yes")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


# --- Logger setup
def setup_logger(name: str = "audit-backend", level: int = None) -> logging.Logger:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO")) if level is None else level
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        if LOG_AS_JSON:
            fmt = jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s"
            )
            handler.setFormatter(fmt)
        logger.addHandler(handler)
    return logger


logger = setup_logger()

# --- Sentry (optional)
if SENTRY_DSN:
    sentry_sdk.init(dsn=SENTRY_DSN, environment=ENVIRONMENT)
    logger.info("Sentry initialized")


# --- Prometheus metrics
REQUEST_COUNT = Counter(
    "audit_http_requests_total",
    "Total /api/audit requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "audit_http_request_latency_seconds",
    "Request latency in seconds",
    ["endpoint"],
)

SUBMISSIONS = Counter(
    "audit_submissions_total",
    "Accepted audit submissions by the store that persisted them",
    ["source"],
)

VALIDATION_FAILURES = Counter(
    "audit_validation_failures_total",
    "Rejected submission fields",
    ["field", "code"],
)

STORE_FALLBACKS = Counter(
    "audit_store_fallbacks_total",
    "Primary store failures absorbed by the file fallback",
    ["operation"],
)

NOTIFICATIONS = Counter(
    "audit_notifications_total",
    "Notification emails by kind and outcome",
    ["kind", "outcome"],
)


# --- Helper wrappers (never crash the app)
def observe_request(start_ts: float, endpoint: str, method: str, status: str):
    try:
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - start_ts)
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    except Exception:
        pass


def inc_submission(source: str):
    try:
        SUBMISSIONS.labels(source=source).inc()
    except Exception:
        pass


def inc_validation_failure(field: str, code: str):
    try:
        VALIDATION_FAILURES.labels(field=field, code=code).inc()
    except Exception:
        pass


def inc_store_fallback(operation: str):
    try:
        STORE_FALLBACKS.labels(operation=operation).inc()
    except Exception:
        pass


def inc_notification(kind: str, outcome: str):
    try:
        NOTIFICATIONS.labels(kind=kind, outcome=outcome).inc()
    except Exception:
        pass


def prometheus_metrics_response() -> Tuple[bytes, str]:
    """Return (body_bytes, content_type) for Prometheus scrape."""
    try:
        return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
    except Exception:
        return b"", CONTENT_TYPE_LATEST

# api/index.py
"""
Vercel Serverless Function adapter.

Vercel's Python runtime looks for a variable named `app` (ASGI) or `handler` (WSGI).
FastAPI is ASGI, so we just re-export it as `app`.
"""
import sys
import os

# Ensure project root is on the Python path so `audit_backend.*` imports resolve.
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Force env vars for serverless context
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

# The deployment filesystem is read-only except /tmp
os.environ.setdefault("FALLBACK_FILE", "/tmp/audit_requests.json")

# Load .env if present (Vercel injects env vars natively, but this helps local testing)
from dotenv import load_dotenv
load_dotenv(os.path.join(ROOT, ".env"), override=True)

# Import the FastAPI app — Vercel uses this
from audit_backend.app import app  # noqa: F401

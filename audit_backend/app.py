# audit_backend/app.py
import time
from typing import Optional, List, Dict, Any

# Load .env BEFORE any audit_backend imports (they read env vars at import time)
from dotenv import load_dotenv
load_dotenv(override=True)

from fastapi import FastAPI, Request, BackgroundTasks
from fastapi.responses import JSONResponse, Response, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from audit_backend import config
from audit_backend import monitoring
from audit_backend import auth as authmod
from audit_backend import db as dbmod
from audit_backend.notifications import NotificationDispatcher, build_mailer
from audit_backend.schemas import Envelope, FieldError, Pagination
from audit_backend.store import AuditStore, JsonFileRecordStore, SqlRecordStore, PRIMARY, FALLBACK
from audit_backend.validation import validate_submission, validate_update

app = FastAPI(title="Digital Audit Requests API")

# Create tables on startup; a failure leaves the app on the file fallback
dbmod.init_db()

# collaborators, swapped out by tests via monkeypatch
store = AuditStore(primary=SqlRecordStore(), fallback=JsonFileRecordStore(config.FALLBACK_FILE))
dispatcher = NotificationDispatcher(build_mailer(), admin_email=config.ADMIN_EMAIL)

AUDIT_PATH = "/api/audit"

SUBMITTED_MESSAGES = {
    PRIMARY: "Audit request submitted successfully",
    FALLBACK: "Audit request saved via local fallback",
}
INTERNAL_ERROR_MESSAGE = "An error occurred while processing your request"

CORS_HEADERS = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,OPTIONS,PATCH,DELETE,POST,PUT",
    "Access-Control-Allow-Headers": (
        "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
        "Content-MD5, Content-Type, Date, X-Api-Version, Authorization"
    ),
}


def _envelope(status_code: int, success: bool, message: Optional[str] = None, data: Any = None,
              errors: Optional[List[FieldError]] = None, pagination: Optional[Pagination] = None,
              headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    body = Envelope(success=success, message=message, data=data, errors=errors, pagination=pagination)
    return JSONResponse(status_code=status_code, content=body.to_json(), headers=headers)


def _internal_error() -> JSONResponse:
    return _envelope(500, success=False, message=INTERNAL_ERROR_MESSAGE)


def _not_found() -> JSONResponse:
    return _envelope(404, success=False, message="Audit request not found")


def _missing_id() -> JSONResponse:
    return _envelope(400, success=False, message="Audit request id is required")


def _positive_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 1 else default


async def _json_body(request: Request) -> Dict[str, Any]:
    """Parsed JSON object body; anything else counts as an empty submission."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# ---------------------------------------------------------------------------
# Admin guard + submission rate-limit middleware
# ---------------------------------------------------------------------------
@app.middleware("http")
async def admin_auth_and_rate_limit_middleware(request: Request, call_next):
    path = request.url.path
    if not path.startswith(AUDIT_PATH):
        return await call_next(request)

    if request.method == "POST":
        client = request.client.host if request.client else ""
        allowed, _ = authmod.check_submit_rate_limit(client)
        if not allowed:
            resp = _envelope(429, success=False, message="Too many submissions, please try again later")
            resp.headers["Retry-After"] = "60"
            return resp
    elif request.method in ("GET", "PATCH", "DELETE"):
        if not authmod.is_admin_authorized(request.headers.get("authorization")):
            return _envelope(401, success=False, message="Unauthorized")

    return await call_next(request)


# ---------------------------------------------------------------------------
# Metrics middleware
# ---------------------------------------------------------------------------
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    endpoint = request.url.path
    method = request.method
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        return response
    except Exception:
        monitoring.logger.exception("Unhandled exception in request", extra={"path": endpoint})
        raise
    finally:
        # label by route template so record ids don't explode cardinality
        route = request.scope.get("route")
        monitoring.observe_request(start, getattr(route, "path", endpoint), method, status)


# ---------------------------------------------------------------------------
# CORS middleware (outermost: OPTIONS never reaches auth or handlers)
# ---------------------------------------------------------------------------
@app.middleware("http")
async def cors_middleware(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        message = "Route not found"
    elif exc.status_code == 405:
        message = "Method not allowed"
    else:
        message = str(exc.detail)
    return _envelope(exc.status_code, success=False, message=message, headers=getattr(exc, "headers", None))


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.post(AUDIT_PATH)
async def submit_audit(request: Request, background_tasks: BackgroundTasks):
    """
    POST /api/audit
    Body: { "name", "email", "company", "website", "message" }
    """
    raw = await _json_body(request)
    result = validate_submission(raw)
    if not result.ok:
        for err in result.errors:
            monitoring.inc_validation_failure(err.field, err.code)
        return _envelope(400, success=False, message="Validation failed", errors=result.errors)

    try:
        stored = await run_in_threadpool(store.create, result.data)
    except Exception:
        monitoring.logger.exception("Unexpected error in POST /api/audit handler")
        return _internal_error()

    record = stored.record
    monitoring.inc_submission(stored.source)
    monitoring.logger.info("Audit request stored", extra={"id": record.id, "source": stored.source})
    # runs after the response is sent; failures only reach the log
    background_tasks.add_task(dispatcher.dispatch, record)
    return _envelope(201, success=True, message=SUBMITTED_MESSAGES[stored.source], data=record.summary())


@app.get(AUDIT_PATH)
async def list_audits(request: Request):
    """
    GET /api/audit?page=1&limit=10
    GET /api/audit?id=...   (single record)
    """
    record_id = request.query_params.get("id")
    if record_id:
        return await _get_audit(record_id)

    page = _positive_int(request.query_params.get("page"), config.DEFAULT_PAGE)
    limit = min(_positive_int(request.query_params.get("limit"), config.DEFAULT_PAGE_LIMIT), config.MAX_PAGE_LIMIT)
    try:
        result = await run_in_threadpool(store.list, page, limit)
    except Exception:
        monitoring.logger.exception("Unexpected error in GET /api/audit handler")
        return _internal_error()

    listing = result.record
    return _envelope(
        200,
        success=True,
        data=[r.to_json() for r in listing.records],
        pagination=Pagination(page=listing.page, limit=listing.limit, total=listing.total, pages=listing.pages),
    )


async def _get_audit(record_id: str) -> JSONResponse:
    try:
        result = await run_in_threadpool(store.get, record_id)
    except Exception:
        monitoring.logger.exception("Unexpected error fetching audit request", extra={"id": record_id})
        return _internal_error()
    if not result.found:
        return _not_found()
    return _envelope(200, success=True, data=result.record.to_json())


@app.get(AUDIT_PATH + "/{record_id}")
async def get_audit(record_id: str):
    return await _get_audit(record_id)


async def _update_audit(record_id: Optional[str], request: Request) -> JSONResponse:
    if not record_id:
        return _missing_id()
    result = validate_update(await _json_body(request))
    if not result.ok:
        return _envelope(400, success=False, message="Validation failed", errors=result.errors)
    try:
        stored = await run_in_threadpool(store.update, record_id, result.data)
    except Exception:
        monitoring.logger.exception("Unexpected error updating audit request", extra={"id": record_id})
        return _internal_error()
    if not stored.found:
        return _not_found()
    return _envelope(200, success=True, message="Audit request updated", data=stored.record.to_json())


@app.patch(AUDIT_PATH)
async def update_audit_by_query(request: Request):
    return await _update_audit(request.query_params.get("id"), request)


@app.patch(AUDIT_PATH + "/{record_id}")
async def update_audit(record_id: str, request: Request):
    """
    PATCH /api/audit/{record_id}
    Body: any subset of { name, email, company, website, message, status }
    """
    return await _update_audit(record_id, request)


async def _delete_audit(record_id: Optional[str]) -> JSONResponse:
    if not record_id:
        return _missing_id()
    try:
        stored = await run_in_threadpool(store.delete, record_id)
    except Exception:
        monitoring.logger.exception("Unexpected error deleting audit request", extra={"id": record_id})
        return _internal_error()
    if not stored.found:
        return _not_found()
    return _envelope(200, success=True, message="Audit request deleted", data=stored.record.to_json())


@app.delete(AUDIT_PATH)
async def delete_audit_by_query(request: Request):
    return await _delete_audit(request.query_params.get("id"))


@app.delete(AUDIT_PATH + "/{record_id}")
async def delete_audit(record_id: str):
    return await _delete_audit(record_id)


@app.get("/health")
async def health():
    return {"status": "ok", "primary": dbmod.is_configured()}


@app.get("/metrics")
async def metrics():
    if not monitoring.PROMETHEUS_ENABLED:
        return PlainTextResponse("Prometheus disabled", status_code=404)
    payload, content_type = monitoring.prometheus_metrics_response()
    return Response(content=payload, media_type=content_type)

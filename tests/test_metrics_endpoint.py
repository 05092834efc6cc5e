from fastapi.testclient import TestClient
import pytest

from audit_backend.app import app
from audit_backend import app as app_module
from audit_backend import db as dbmod
from audit_backend.notifications import DisabledMailer, NotificationDispatcher
from audit_backend.store import AuditStore, JsonFileRecordStore, SqlRecordStore


def test_metrics_endpoint_returns_prometheus_format():
    client = TestClient(app)
    r = client.get("/metrics")
    # Should return 200 with prometheus text format (if PROMETHEUS_ENABLED defaults to true)
    assert r.status_code in (200, 404)
    if r.status_code == 200:
        assert "text/plain" in r.headers.get("content-type", "") or "text" in r.headers.get("content-type", "")


def test_fallback_submission_is_counted(tmp_path, monkeypatch):
    dbmod.reconfigure("")
    monkeypatch.setattr(app_module, "store", AuditStore(SqlRecordStore(), JsonFileRecordStore(tmp_path / "f.json")))
    monkeypatch.setattr(app_module, "dispatcher", NotificationDispatcher(DisabledMailer()))
    client = TestClient(app)

    client.post("/api/audit", json={
        "name": "Ada", "email": "ada@x.com", "company": "Acme",
        "website": "https://acme.test", "message": "hi",
    })
    r = client.get("/metrics")
    if r.status_code == 404:
        pytest.skip("prometheus disabled")
    assert 'audit_submissions_total{source="fallback"}' in r.text
    assert 'audit_store_fallbacks_total{operation="create"}' in r.text


def test_health_still_works():
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"

"""
Tests for the /api/audit endpoints backed by the primary (SQLite) store.
"""
import datetime
import pytest
from fastapi.testclient import TestClient

from audit_backend.app import app
from audit_backend import app as app_module
from audit_backend import db as dbmod
from audit_backend.notifications import DisabledMailer, NotificationDispatcher
from audit_backend.store import AuditStore, JsonFileRecordStore, SqlRecordStore

VALID = {
    "name": "Ada",
    "email": "ADA@X.COM",
    "company": "Acme",
    "website": "https://acme.test",
    "message": "hi",
}


def _ts(value: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(value.rstrip("Z"))


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture(autouse=True)
def primary_store(tmp_path, monkeypatch):
    dbmod.reconfigure(f"sqlite:///{tmp_path / 'test_audit.db'}")
    dbmod.init_db()
    fallback = JsonFileRecordStore(tmp_path / "fallback.json")
    monkeypatch.setattr(app_module, "store", AuditStore(SqlRecordStore(), fallback))
    monkeypatch.setattr(app_module, "dispatcher", NotificationDispatcher(DisabledMailer()))
    yield fallback
    dbmod.reconfigure("")


def _submit(client, **overrides):
    r = client.post("/api/audit", json=dict(VALID, **overrides))
    assert r.status_code == 201, r.text
    return r.json()["data"]


def test_submit_returns_201_and_normalized_email(client, primary_store):
    r = client.post("/api/audit", json=VALID)
    assert r.status_code == 201
    j = r.json()
    assert j["success"] is True
    assert j["message"] == "Audit request submitted successfully"
    assert set(j["data"]) == {"id", "name", "email", "company"}
    assert j["data"]["email"] == "ada@x.com"
    # primary served it; nothing written to the fallback
    assert primary_store.load() == []


def test_submit_then_get_round_trip(client):
    data = _submit(client)
    r = client.get(f"/api/audit/{data['id']}")
    assert r.status_code == 200
    rec = r.json()["data"]
    assert rec["id"] == data["id"]
    assert rec["email"] == "ada@x.com"
    assert rec["website"] == "https://acme.test"
    assert rec["status"] == "pending"
    assert rec["createdAt"] == rec["updatedAt"]

    # query-string form
    r2 = client.get("/api/audit", params={"id": data["id"]})
    assert r2.status_code == 200
    assert r2.json()["data"] == rec


def test_submit_validation_errors_in_field_order(client):
    r = client.post("/api/audit", json={"email": "bad", "website": "nope"})
    assert r.status_code == 400
    j = r.json()
    assert j["success"] is False
    assert [(e["field"], e["code"]) for e in j["errors"]] == [
        ("name", "required"),
        ("email", "invalid_format"),
        ("company", "required"),
        ("website", "invalid_url"),
        ("message", "required"),
    ]
    assert all(e["message"] for e in j["errors"])


def test_submit_with_malformed_body_is_a_validation_error(client):
    r = client.post("/api/audit", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert len(r.json()["errors"]) == 5

    r2 = client.post("/api/audit", json=["a", "list"])
    assert r2.status_code == 400


def test_validation_happens_before_persistence(client, monkeypatch):
    def boom(data):
        raise AssertionError("store must not be called")

    monkeypatch.setattr(app_module.store, "create", boom)
    r = client.post("/api/audit", json=dict(VALID, name=""))
    assert r.status_code == 400


def test_list_pagination(client):
    for i in range(5):
        _submit(client, name=f"user{i}")

    r = client.get("/api/audit", params={"page": 1, "limit": 2})
    assert r.status_code == 200
    j = r.json()
    assert j["success"] is True
    assert len(j["data"]) == 2
    assert j["pagination"] == {"page": 1, "limit": 2, "total": 5, "pages": 3}

    last = client.get("/api/audit", params={"page": 3, "limit": 2}).json()
    assert len(last["data"]) == 1

    beyond = client.get("/api/audit", params={"page": 9, "limit": 2})
    assert beyond.status_code == 200
    assert beyond.json()["data"] == []
    assert beyond.json()["pagination"]["total"] == 5


def test_list_newest_first(client):
    ids = [_submit(client, name=f"user{i}")["id"] for i in range(3)]
    data = client.get("/api/audit").json()["data"]
    created = [_ts(r["createdAt"]) for r in data]
    assert created == sorted(created, reverse=True)
    assert set(r["id"] for r in data) == set(ids)


def test_list_defaults_for_bad_paging_params(client):
    _submit(client)
    j = client.get("/api/audit", params={"page": "abc", "limit": "0"}).json()
    assert j["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}

    empty = client.get("/api/audit", params={"page": "-3"}).json()
    assert empty["pagination"]["page"] == 1


def test_get_unknown_id_is_404(client):
    r = client.get("/api/audit/does-not-exist")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Audit request not found"}


def test_patch_updates_only_supplied_fields(client):
    data = _submit(client)
    before = client.get(f"/api/audit/{data['id']}").json()["data"]

    r = client.patch(f"/api/audit/{data['id']}", json={"status": "reviewed", "createdAt": "1999-01-01T00:00:00Z"})
    assert r.status_code == 200
    after = r.json()["data"]
    assert after["status"] == "reviewed"
    for key in ("name", "email", "company", "website", "message", "createdAt"):
        assert after[key] == before[key]
    assert _ts(after["updatedAt"]) > _ts(before["updatedAt"])

    assert client.get(f"/api/audit/{data['id']}").json()["data"] == after


def test_patch_validation_and_missing_cases(client):
    data = _submit(client)

    bad = client.patch(f"/api/audit/{data['id']}", json={"status": "archived"})
    assert bad.status_code == 400
    assert bad.json()["errors"][0]["field"] == "status"

    assert client.patch("/api/audit/unknown", json={"status": "reviewed"}).status_code == 404
    missing_id = client.patch("/api/audit", json={"status": "reviewed"})
    assert missing_id.status_code == 400
    assert missing_id.json()["success"] is False

    by_query = client.patch("/api/audit", params={"id": data["id"]}, json={"status": "completed"})
    assert by_query.status_code == 200
    assert by_query.json()["data"]["status"] == "completed"


def test_delete_returns_record_and_removes_it(client):
    data = _submit(client)
    r = client.delete(f"/api/audit/{data['id']}")
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert r.json()["data"]["id"] == data["id"]

    assert client.get(f"/api/audit/{data['id']}").status_code == 404
    assert client.delete(f"/api/audit/{data['id']}").status_code == 404
    assert client.delete("/api/audit").status_code == 400


def test_unexpected_store_error_is_500(client, monkeypatch):
    def boom(page, limit):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(app_module.store, "list", boom)
    r = client.get("/api/audit")
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "An error occurred while processing your request"}


def test_options_short_circuits_with_cors_headers(client, monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("handlers must not run for OPTIONS")

    monkeypatch.setattr(app_module.store, "create", boom)
    r = client.options("/api/audit")
    assert r.status_code == 200
    assert r.content == b""
    assert r.headers["access-control-allow-origin"] == "*"
    assert r.headers["access-control-allow-credentials"] == "true"
    for verb in ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"):
        assert verb in r.headers["access-control-allow-methods"]


def test_cors_headers_on_every_response(client):
    ok = client.get("/api/audit")
    missing = client.get("/api/audit/nope")
    invalid = client.post("/api/audit", json={})
    for r in (ok, missing, invalid):
        assert r.headers["access-control-allow-origin"] == "*"


def test_unsupported_verb_is_405(client):
    r = client.put("/api/audit", json=VALID)
    assert r.status_code == 405
    assert r.json() == {"success": False, "message": "Method not allowed"}

    r2 = client.post("/api/audit/some-id", json=VALID)
    assert r2.status_code == 405


def test_unknown_route_is_404_envelope(client):
    r = client.get("/api/nothing-here")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Route not found"}


def test_huge_page_number_stays_on_primary(client, primary_store):
    _submit(client)
    for i in range(3):
        primary_store.create(dict(VALID, email="old@x.com", name=f"legacy{i}"))

    r = client.get("/api/audit", params={"page": 10 ** 20, "limit": 10})
    assert r.status_code == 200
    j = r.json()
    assert j["data"] == []
    assert j["pagination"]["total"] == 1
    assert j["pagination"]["page"] == 10 ** 20


def test_limit_is_clamped(client, primary_store):
    _submit(client)
    primary_store.create(dict(VALID, email="old@x.com"))

    j = client.get("/api/audit", params={"limit": 10 ** 20}).json()
    assert j["pagination"] == {"page": 1, "limit": 100, "total": 1, "pages": 1}
    assert len(j["data"]) == 1


def test_submit_accepts_reserved_domain_email(client):
    data = _submit(client, email="Ada@Acme.TEST")
    assert data["email"] == "ada@acme.test"

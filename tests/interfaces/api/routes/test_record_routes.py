"""Integration tests for the schema, record and system endpoints."""

from __future__ import annotations

import time

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from main import create_app

CATEGORY_SCHEMA = {
    "type": "object",
    "properties": {"name": {"type": "string", "minLength": 1}},
    "required": ["name"],
}


@pytest.fixture()
def client(settings):
    """Return a test client bound to a clean application instance."""

    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def category(client: TestClient) -> dict:
    response = client.post("/schemas", json={"name": "Category", "json_schema": CATEGORY_SCHEMA})
    assert response.status_code == 201
    return response.json()


def test_schema_lifecycle(client: TestClient, category: dict) -> None:
    assert category["collection_name"] == "dynamic_Category"

    duplicate = client.post("/schemas", json={"name": "Category", "json_schema": CATEGORY_SCHEMA})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "schema_exists"

    listed = client.get("/schemas").json()
    assert [item["name"] for item in listed] == ["Category"]

    updated = client.put("/schemas/Category", json={"display_name": "Categories"})
    assert updated.status_code == 200
    assert updated.json()["display_name"] == "Categories"

    assert client.delete("/schemas/Category").status_code == 204
    assert client.get("/schemas/Category").status_code == 404


def test_invalid_schema_definition_is_rejected(client: TestClient) -> None:
    response = client.post("/schemas", json={"name": "1bad", "json_schema": CATEGORY_SCHEMA})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_schema"


def test_record_crud_flow(client: TestClient, category: dict) -> None:
    created = client.post(
        "/records/Category", json={"name": "Books"}, headers={"X-User-Id": "alice"}
    )
    assert created.status_code == 201
    record = created.json()
    record_id = record["_id"]

    fetched = client.get(f"/records/Category/{record_id}")
    assert fetched.json()["name"] == "Books"

    updated = client.put(f"/records/Category/{record_id}", json={"name": "Novels"})
    assert updated.status_code == 200
    assert updated.json()["_revision"] == 1

    stale = client.put(
        f"/records/Category/{record_id}",
        params={"expected_revision": 0},
        json={"name": "Stale"},
    )
    assert stale.status_code == 409
    assert stale.json()["detail"]["code"] == "revision_conflict"

    assert client.get("/records/Category/count").json() == {"schema_name": "Category", "count": 1}
    assert client.delete(f"/records/Category/{record_id}").status_code == 204
    assert client.get(f"/records/Category/{record_id}").status_code == 404


def test_validation_errors_are_listed(client: TestClient, category: dict) -> None:
    response = client.post("/records/Category", json={"name": ""})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "validation_failed"
    assert detail["errors"]


def test_unknown_schema_returns_404(client: TestClient) -> None:
    response = client.post("/records/Ghost", json={"name": "x"})

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "schema_not_found"


def test_list_records_with_audit_info(client: TestClient, category: dict) -> None:
    client.post("/records/Category/bulk", json={"records": [{"name": "a"}, {"name": "b"}]})

    plain = client.get("/records/Category", params={"limit": 1}).json()
    assert plain["pagination"]["total_records"] == 2
    assert len(plain["records"]) == 1

    enriched = client.get("/records/Category", params={"with_audit": True}).json()
    assert all(item["audit_info"]["total_versions"] == 1 for item in enriched["records"])


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 101}, {"limit": "abc"}])
def test_list_records_rejects_bad_pagination(client: TestClient, category: dict, params) -> None:
    assert client.get("/records/Category", params=params).status_code == 422


def test_bulk_create_rejects_the_whole_batch(client: TestClient, category: dict) -> None:
    response = client.post("/records/Category/bulk", json={"records": [{"name": "ok"}, {}]})

    assert response.status_code == 400
    assert client.get("/records/Category/count").json()["count"] == 0


def test_import_records(client: TestClient, category: dict) -> None:
    response = client.post("/records/Category/import", json={"records": [{"name": "x"}]})

    assert response.status_code == 201
    assert response.json()["count"] == 1


def test_health_and_change_stream_status(client: TestClient, category: dict) -> None:
    health = client.get("/system/health").json()
    assert health["status"] == "healthy"
    assert health["database"] == "connected"
    assert health["schemas"] == 1

    streams = client.get("/system/change-streams").json()
    assert streams == {"is_initialized": False, "total_streams": 0, "streams": {}}


def test_slow_create_returns_gateway_timeout(settings, monkeypatch) -> None:
    app = create_app(settings.model_copy(update={"operation_timeout_seconds": 0.05}))
    with TestClient(app) as test_client:
        test_client.post("/schemas", json={"name": "Category", "json_schema": CATEGORY_SCHEMA})

        def slow_create(*args, **kwargs):
            time.sleep(0.3)
            return {}

        monkeypatch.setattr(app.state.container.crud, "create_record", slow_create)
        response = test_client.post("/records/Category", json={"name": "Books"})

    assert response.status_code == 504
    detail = response.json()["detail"]
    assert detail["code"] == "operation_timeout"
    assert "may still have been stored" in detail["message"]


def test_new_schema_gets_a_change_stream(settings) -> None:
    app = create_app(settings.model_copy(update={"change_feed_enabled": True}))
    with TestClient(app) as test_client:
        created = test_client.post(
            "/schemas", json={"name": "Category", "json_schema": CATEGORY_SCHEMA}
        )
        streams = test_client.get("/system/change-streams").json()

        assert created.status_code == 201
        assert streams["is_initialized"] is True
        assert streams["streams"]["Category"]["status"] == "active"

        assert test_client.delete("/schemas/Category").status_code == 204
        assert test_client.get("/system/change-streams").json()["total_streams"] == 0

"""Integration tests for the audit endpoints."""

from __future__ import annotations

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from docledger.infrastructure.repositories import AuditLogRepository
from main import create_app


@pytest.fixture()
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        test_client.post(
            "/schemas",
            json={
                "name": "Category",
                "json_schema": {
                    "type": "object",
                    "properties": {"name": {"type": "string"}, "note": {"type": "string"}},
                },
            },
        )
        yield test_client


@pytest.fixture()
def record_id(client: TestClient) -> str:
    """A category with three versions."""

    created = client.post("/records/Category", json={"name": "Books"}).json()
    client.put(f"/records/Category/{created['_id']}", json={"name": "Novels", "note": "x"})
    client.put(f"/records/Category/{created['_id']}", json={"name": "Stories"})
    return created["_id"]


def test_document_history(client: TestClient, record_id: str) -> None:
    response = client.get(
        f"/audit/Category/{record_id}/history",
        params={"limit": 2},
        headers={"X-User-Id": "ignored-on-read"},
    )

    assert response.status_code == 200
    body = response.json()
    assert [entry["version"] for entry in body["audit_logs"]] == [3, 2]
    assert body["pagination"]["total_records"] == 3
    assert body["audit_logs"][0]["changed_fields"] == [
        {"field": "name", "old_value": "Novels", "new_value": "Stories"}
    ]


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 101}, {"limit": "abc"}])
def test_history_rejects_bad_pagination(client: TestClient, record_id: str, params) -> None:
    response = client.get(f"/audit/Category/{record_id}/history", params=params)

    assert response.status_code == 422


def test_versions_and_point_in_time_state(client: TestClient, record_id: str) -> None:
    versions = client.get(f"/audit/Category/{record_id}/versions").json()
    assert [item["version"] for item in versions["versions"]] == [3, 2, 1]

    snapshot = client.get(f"/audit/Category/{record_id}/version/2").json()
    assert snapshot["operation"] == "update"
    assert snapshot["state"]["name"] == "Novels"

    assert client.get(f"/audit/Category/{record_id}/version/9").status_code == 404
    assert client.get(f"/audit/Category/{record_id}/version/0").status_code == 422


def test_compare_versions(client: TestClient, record_id: str) -> None:
    response = client.get(
        f"/audit/Category/{record_id}/compare",
        params={"from_version": 1, "to_version": 2},
    )

    body = response.json()
    assert body["total_changes"] == 2
    assert {item["field"]: item["change_type"] for item in body["differences"]} == {
        "name": "modified",
        "note": "added",
    }


def test_revert_records_actor_and_reason(client: TestClient, record_id: str) -> None:
    response = client.post(
        f"/audit/Category/{record_id}/revert/1",
        json={"reason": "undo"},
        headers={"X-User-Id": "auditor", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["reverted_from_version"] == 1
    assert body["document"]["name"] == "Books"
    assert "note" not in body["document"]
    entry = body["audit_log"]
    assert entry["version"] == 4
    assert entry["user_id"] == "auditor"
    assert entry["ip_address"] == "203.0.113.9"
    assert entry["metadata"]["reason"] == "undo"
    assert entry["reverted_from"] is not None


def test_revert_without_body(client: TestClient, record_id: str) -> None:
    response = client.post(f"/audit/Category/{record_id}/revert/2")

    assert response.status_code == 200
    assert response.json()["document"]["note"] == "x"


def test_revert_to_delete_version_conflicts(client: TestClient, record_id: str) -> None:
    client.delete(f"/records/Category/{record_id}")

    response = client.post(f"/audit/Category/{record_id}/revert/4")

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "no_state_at_version"


def test_bulk_revert(client: TestClient, record_id: str) -> None:
    response = client.post(
        "/audit/Category/bulk-revert",
        json={
            "operations": [
                {"record_id": record_id, "target_version": 1},
                {"record_id": "missing", "target_version": 1},
            ]
        },
    )

    body = response.json()
    assert body["total_processed"] == 2
    assert [item["record_id"] for item in body["successful"]] == [record_id]
    assert body["failed"][0]["code"] == "version_not_found"


def test_schema_history_stats_and_summary(client: TestClient, record_id: str) -> None:
    history = client.get("/audit/Category/history", params={"operation": "update"}).json()
    assert history["pagination"]["total_records"] == 2

    stats = client.get("/audit/Category/stats", params={"timeframe": "7d"}).json()
    assert stats["operations"] == {"create": 1, "update": 2, "delete": 0}
    assert stats["unique_documents"] == 1

    summary = client.get("/audit/Category/summary").json()
    assert summary["summary"]["most_frequent_operation"] == "update"
    assert len(summary["recent_activity"]) == 3

    assert client.get("/audit/Category/stats", params={"timeframe": "1y"}).status_code == 400


def test_cleanup_dry_run(client: TestClient, record_id: str) -> None:
    preview = client.post("/audit/Category/cleanup", json={"older_than_days": 0, "dry_run": True})
    assert preview.json()["would_delete"] == 3

    history = client.get(f"/audit/Category/{record_id}/history").json()
    assert history["pagination"]["total_records"] == 3

    removed = client.post("/audit/cleanup", json={"older_than_days": 0, "schema_name": "Category"})
    assert removed.json()["deleted"] == 3


def test_revert_succeeds_when_back_reference_cannot_be_saved(
    client: TestClient, record_id: str, monkeypatch
) -> None:
    def fail_backfill(self, entry_id, target_entry_id):
        raise OperationalError("UPDATE audit_log", {}, Exception("database is locked"))

    monkeypatch.setattr(AuditLogRepository, "set_reverted_from", fail_backfill)

    response = client.post(f"/audit/Category/{record_id}/revert/1")

    assert response.status_code == 200
    body = response.json()
    assert body["document"]["name"] == "Books"
    assert body["audit_log"]["version"] == 4
    assert body["audit_log"]["reverted_from"] is None

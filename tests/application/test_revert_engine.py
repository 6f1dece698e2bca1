"""Tests for point-in-time reads, reverts and version comparison."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from docledger.application.use_cases.audit import get_document_at_version
from docledger.domain.entities import ActorContext, strip_system_fields
from docledger.domain.errors import (
    InvalidVersionError,
    LogPersistenceFailure,
    NoStateAtVersion,
    RevisionConflict,
    VersionNotFound,
    VersionNotRevertable,
)
from docledger.infrastructure.models import AuditLogModel
from docledger.infrastructure.repositories import AuditLogRepository
from docledger.utils import ensure_app_naive_datetime, now_in_app_timezone


def _record_with_history(container) -> str:
    """Create a category and update it twice: versions 1, 2 and 3."""

    crud = container.crud
    created = crud.create_record("Category", {"name": "Books"})
    record_id = created["_id"]
    crud.update_record("Category", record_id, {"name": "Novels", "description": "fiction"})
    crud.update_record("Category", record_id, {"name": "Stories"})
    return record_id


def test_state_at_each_version_matches_what_was_written(catalog) -> None:
    record_id = _record_with_history(catalog)

    states = [
        strip_system_fields(get_document_at_version(catalog.ledger, record_id, "Category", v)["state"])
        for v in (1, 2, 3)
    ]

    assert states == [
        {"name": "Books"},
        {"name": "Novels", "description": "fiction"},
        {"name": "Stories", "description": "fiction"},
    ]


def test_state_at_missing_version_raises(catalog) -> None:
    record_id = _record_with_history(catalog)

    with pytest.raises(VersionNotFound):
        get_document_at_version(catalog.ledger, record_id, "Category", 9)


def test_revert_restores_business_fields_and_is_audited(catalog) -> None:
    record_id = _record_with_history(catalog)
    target = catalog.ledger.get_entry(record_id, "Category", 1)

    result = catalog.revert_engine.revert_to_version(
        record_id,
        "Category",
        1,
        actor=ActorContext(user_id="auditor"),
        reason="bad rename",
    )

    assert strip_system_fields(result["document"]) == {"name": "Books"}
    assert strip_system_fields(catalog.crud.get_record_by_id("Category", record_id)) == {
        "name": "Books"
    }
    entry = result["audit_log"]
    assert entry.version == 4
    assert entry.operation == "update"
    assert entry.reverted_from == target.id
    assert entry.user_id == "auditor"
    assert entry.metadata == {
        "source": "api",
        "is_revert": True,
        "reverted_to_version": 1,
        "reason": "bad rename",
    }
    assert {item.field for item in entry.changed_fields} == {"name", "description"}


def test_reverting_twice_yields_the_same_state(catalog) -> None:
    record_id = _record_with_history(catalog)
    engine = catalog.revert_engine

    first = engine.revert_to_version(record_id, "Category", 2)
    second = engine.revert_to_version(record_id, "Category", 2)

    assert strip_system_fields(first["document"]) == strip_system_fields(second["document"])
    assert second["audit_log"].version == first["audit_log"].version + 1
    assert second["audit_log"].changed_fields == []


def test_revert_rejects_entries_flagged_not_revertable(catalog) -> None:
    record_id = _record_with_history(catalog)
    catalog.ledger.log_change(
        document_id=record_id,
        schema_name="Category",
        collection_name="dynamic_Category",
        operation="update",
        previous_state={"name": "Stories"},
        current_state={"name": "Locked"},
        can_revert=False,
    )

    with pytest.raises(VersionNotRevertable):
        catalog.revert_engine.revert_to_version(record_id, "Category", 4)


def test_revert_to_delete_entry_has_no_state(catalog) -> None:
    record_id = _record_with_history(catalog)
    catalog.crud.delete_record("Category", record_id)

    with pytest.raises(NoStateAtVersion):
        catalog.revert_engine.revert_to_version(record_id, "Category", 4)


def test_revert_validates_target_version(catalog) -> None:
    record_id = _record_with_history(catalog)

    with pytest.raises(InvalidVersionError):
        catalog.revert_engine.revert_to_version(record_id, "Category", 0)
    with pytest.raises(VersionNotFound):
        catalog.revert_engine.revert_to_version(record_id, "Category", 42)


def test_revert_with_stale_revision_is_rejected(catalog) -> None:
    record_id = _record_with_history(catalog)

    with pytest.raises(RevisionConflict):
        catalog.revert_engine.revert_to_version(
            record_id, "Category", 1, expected_revision=0
        )
    assert catalog.ledger.get_latest_version(record_id, "Category") == 3


def test_bulk_revert_reports_each_item(catalog) -> None:
    first = _record_with_history(catalog)
    second = _record_with_history(catalog)

    result = catalog.revert_engine.bulk_revert(
        "Category",
        [
            {"record_id": first, "target_version": 1},
            {"record_id": second, "target_version": 99},
            {"record_id": "", "target_version": 1},
        ],
        reason="cleanup",
    )

    assert [item["record_id"] for item in result["successful"]] == [first]
    assert result["successful"][0]["new_version"] == 4
    assert [item["code"] for item in result["failed"]] == ["version_not_found", "invalid_request"]
    assert strip_system_fields(catalog.crud.get_record_by_id("Category", second))["name"] == "Stories"


def test_compare_versions_lists_differences(catalog) -> None:
    record_id = _record_with_history(catalog)

    comparison = catalog.revert_engine.compare_versions(record_id, "Category", 1, 3)

    assert comparison["from_version"]["version"] == 1
    assert comparison["to_version"]["operation"] == "update"
    assert comparison["total_changes"] == 2
    assert {item["field"]: item["change_type"] for item in comparison["differences"]} == {
        "name": "modified",
        "description": "added",
    }


def test_bulk_revert_failure_does_not_block_later_items(catalog) -> None:
    records = [_record_with_history(catalog) for _ in range(3)]

    result = catalog.revert_engine.bulk_revert(
        "Category",
        [
            {"record_id": records[0], "target_version": 1},
            {"record_id": records[1], "target_version": 7},
            {"record_id": records[2], "target_version": 1},
        ],
    )

    assert [item["record_id"] for item in result["successful"]] == [records[0], records[2]]
    assert [item["record_id"] for item in result["failed"]] == [records[1]]
    for record_id in (records[0], records[2]):
        assert catalog.crud.get_record_by_id("Category", record_id)["name"] == "Books"


def test_reverted_state_matches_target_version(catalog) -> None:
    record_id = _record_with_history(catalog)

    result = catalog.revert_engine.revert_to_version(record_id, "Category", 2)
    comparison = catalog.revert_engine.compare_versions(
        record_id, "Category", 2, result["audit_log"].version
    )

    assert comparison["differences"] == []


def _fail_backfill(self, entry_id, target_entry_id):
    raise OperationalError("UPDATE audit_log", {}, Exception("database is locked"))


def test_back_reference_failure_is_a_persistence_error(catalog, monkeypatch) -> None:
    record_id = _record_with_history(catalog)
    entry = catalog.ledger.get_entry(record_id, "Category", 3)
    monkeypatch.setattr(AuditLogRepository, "set_reverted_from", _fail_backfill)

    with pytest.raises(LogPersistenceFailure):
        catalog.ledger.set_reverted_from(entry.id, 1)


def test_revert_survives_a_failed_back_reference(catalog, monkeypatch, caplog) -> None:
    record_id = _record_with_history(catalog)
    monkeypatch.setattr(AuditLogRepository, "set_reverted_from", _fail_backfill)

    with caplog.at_level("WARNING"):
        result = catalog.revert_engine.revert_to_version(record_id, "Category", 1)

    assert strip_system_fields(result["document"]) == {"name": "Books"}
    assert result["audit_log"].version == 4
    assert result["audit_log"].reverted_from is None
    assert catalog.ledger.get_latest_version(record_id, "Category") == 4
    assert "could not record it" in caplog.text


def test_retention_leaves_kept_back_references_untouched(catalog) -> None:
    record_id = _record_with_history(catalog)
    target = catalog.ledger.get_entry(record_id, "Category", 1)
    catalog.revert_engine.revert_to_version(record_id, "Category", 1)

    long_ago = ensure_app_naive_datetime(now_in_app_timezone() - timedelta(days=60))
    with catalog.session_factory() as session:
        session.execute(
            update(AuditLogModel)
            .where(AuditLogModel.document_id == record_id)
            .where(AuditLogModel.version <= 3)
            .values(timestamp=long_ago)
        )
        session.commit()

    result = catalog.ledger.cleanup_old_audit_logs(older_than_days=30, schema_name="Category")

    assert result["deleted"] == 3
    kept = catalog.ledger.get_entry(record_id, "Category", 4)
    assert kept.reverted_from == target.id
    assert catalog.ledger.get_entry(record_id, "Category", 1) is None

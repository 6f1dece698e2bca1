"""Tests for record CRUD, its audit trail and dependency propagation."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from docledger.application.use_cases.records import last_updated_field, version_field
from docledger.domain.entities import ActorContext
from docledger.domain.errors import (
    DocumentNotFound,
    InvalidPaginationError,
    InvalidRequestError,
    LogPersistenceFailure,
    RecordValidationError,
    SchemaNotFound,
)


def test_create_record_stores_system_fields_and_logs_version_one(catalog) -> None:
    record = catalog.crud.create_record(
        "Category", {"name": "Books", "_id": "spoofed"}, actor=ActorContext(user_id="u1")
    )

    assert record["_id"] != "spoofed"
    assert record["_schema_name"] == "Category"
    assert record["_revision"] == 0
    history = catalog.ledger.get_audit_history(record["_id"], "Category")
    assert [(entry.version, entry.operation, entry.user_id) for entry in history.items] == [
        (1, "create", "u1")
    ]
    assert history.items[0].metadata == {"source": "api"}


def test_create_record_validates_against_json_schema(catalog) -> None:
    with pytest.raises(RecordValidationError) as excinfo:
        catalog.crud.create_record("Category", {"description": 5})

    assert excinfo.value.errors
    assert catalog.crud.get_record_count("Category") == 0


def test_update_validates_only_supplied_fields(catalog) -> None:
    record = catalog.crud.create_record("Category", {"name": "Books"})

    updated = catalog.crud.update_record("Category", record["_id"], {"description": "all books"})
    assert updated["name"] == "Books"
    assert updated["_revision"] == 1

    with pytest.raises(RecordValidationError):
        catalog.crud.update_record("Category", record["_id"], {"name": ""})


def test_update_and_delete_of_missing_record(catalog) -> None:
    with pytest.raises(DocumentNotFound):
        catalog.crud.update_record("Category", "missing", {"name": "x"})
    with pytest.raises(DocumentNotFound):
        catalog.crud.delete_record("Category", "missing")


def test_delete_record_logs_previous_state(catalog) -> None:
    record = catalog.crud.create_record("Category", {"name": "Books"})

    assert catalog.crud.delete_record("Category", record["_id"]) is True

    latest = catalog.ledger.get_audit_history(record["_id"], "Category").items[0]
    assert latest.operation == "delete"
    assert latest.current_state is None
    assert latest.previous_state["name"] == "Books"
    with pytest.raises(DocumentNotFound):
        catalog.crud.get_record_by_id("Category", record["_id"])


def test_unknown_schema_is_reported(container) -> None:
    with pytest.raises(SchemaNotFound):
        container.crud.create_record("Ghost", {"name": "x"})


def test_records_are_paginated_newest_first(catalog) -> None:
    for index in range(5):
        catalog.crud.create_record("Category", {"name": f"c{index}"})

    page = catalog.crud.get_records("Category", page=1, limit=2)

    assert len(page.items) == 2
    assert page.pagination.total_records == 5
    assert page.pagination.total_pages == 3
    with pytest.raises(InvalidPaginationError):
        catalog.crud.get_records("Category", page=0)
    with pytest.raises(InvalidPaginationError):
        catalog.crud.get_records("Category", limit=101)


def test_records_with_audit_info(catalog) -> None:
    record = catalog.crud.create_record("Category", {"name": "Books"}, actor=ActorContext(user_id="a"))
    catalog.crud.update_record("Category", record["_id"], {"name": "B"}, actor=ActorContext(user_id="b"))

    page = catalog.crud.get_records_with_audit("Category")

    audit_info = page.items[0]["audit_info"]
    assert audit_info["total_versions"] == 2
    assert audit_info["last_modified_by"] == "b"
    assert audit_info["can_revert"] is True


def test_bulk_create_is_all_or_nothing(catalog) -> None:
    with pytest.raises(RecordValidationError) as excinfo:
        catalog.crud.bulk_create_records("Category", [{"name": "ok"}, {"name": 3}])
    assert excinfo.value.errors[0].startswith("Record 1:")
    assert catalog.crud.get_record_count("Category") == 0

    with pytest.raises(InvalidRequestError):
        catalog.crud.bulk_create_records("Category", [])


def test_bulk_create_audits_every_record(catalog) -> None:
    records = catalog.crud.bulk_create_records(
        "Category", [{"name": f"c{index}"} for index in range(4)]
    )

    assert len(records) == 4
    for record in records:
        entry = catalog.ledger.get_entry(record["_id"], "Category", 1)
        assert entry.metadata == {"source": "bulk", "bulk_operation": True}


def test_import_writes_no_ledger_entries(catalog) -> None:
    records = catalog.crud.import_records("Category", [{"name": "imported"}])

    assert catalog.ledger.get_latest_version(records[0]["_id"], "Category") == 0


def test_update_stamps_dependent_records(catalog) -> None:
    crud = catalog.crud
    category = crud.create_record("Category", {"name": "Books"})
    single = crud.create_record("Product", {"title": "Novel", "category": category["_id"]})
    listed = crud.create_record("Product", {"title": "Atlas", "related": [category["_id"]]})
    unrelated = crud.create_record("Product", {"title": "Pen"})

    crud.update_record("Category", category["_id"], {"name": "Literature"})
    crud.update_record("Category", category["_id"], {"description": "long form"})

    stamped = crud.get_record_by_id("Product", single["_id"])
    assert stamped[version_field("category")] == 2
    assert last_updated_field("category") in stamped
    assert stamped["title"] == "Novel"
    assert crud.get_record_by_id("Product", listed["_id"])[version_field("related")] == 2
    assert version_field("category") not in crud.get_record_by_id("Product", unrelated["_id"])
    assert catalog.ledger.get_latest_version(single["_id"], "Product") == 1


def test_find_dependent_records_lists_every_reference(catalog) -> None:
    crud = catalog.crud
    category = crud.create_record("Category", {"name": "Books"})
    product = crud.create_record(
        "Product",
        {"title": "Novel", "category": category["_id"], "related": [category["_id"]]},
    )

    dependents = catalog.propagator.find_dependent_records("Category", category["_id"])

    assert sorted((item.record_id, item.field, item.reference_type) for item in dependents) == [
        (product["_id"], "category", "single"),
        (product["_id"], "related", "array"),
    ]


def test_delete_propagates_to_dependents(catalog) -> None:
    crud = catalog.crud
    category = crud.create_record("Category", {"name": "Books"})
    product = crud.create_record("Product", {"title": "Novel", "category": category["_id"]})

    crud.delete_record("Category", category["_id"])

    assert crud.get_record_by_id("Product", product["_id"])[version_field("category")] == 1


def test_propagation_without_dependents(catalog) -> None:
    category = catalog.crud.create_record("Category", {"name": "Books"})

    result = catalog.propagator.propagate_changes("Category", category["_id"], {"name": "x"})

    assert result.to_dict() == {"propagated": 0, "errors": [], "dependent_records": []}


def test_write_succeeds_when_the_audit_entry_cannot_be_stored(catalog, monkeypatch, caplog) -> None:
    def failing_log_change(**kwargs):
        raise LogPersistenceFailure("audit storage unavailable")

    monkeypatch.setattr(catalog.ledger, "log_change", failing_log_change)

    with caplog.at_level("WARNING"):
        record = catalog.crud.create_record("Category", {"name": "Books"})
        updated = catalog.crud.update_record("Category", record["_id"], {"name": "Novels"})

    assert updated["name"] == "Novels"
    assert catalog.crud.get_record_by_id("Category", record["_id"])["name"] == "Novels"
    assert catalog.ledger.get_latest_version(record["_id"], "Category") == 0
    assert "committed without an audit entry" in caplog.text


def test_storage_error_on_one_dependent_does_not_stop_the_others(catalog, monkeypatch) -> None:
    crud = catalog.crud
    category = crud.create_record("Category", {"name": "Books"})
    locked = crud.create_record("Product", {"title": "Novel", "category": category["_id"]})
    other = crud.create_record("Product", {"title": "Atlas", "category": category["_id"]})

    products = catalog.collections.get("Product")
    real_update = products.find_by_id_and_update

    def update_or_fail(document_id, changes, **kwargs):
        if document_id == locked["_id"]:
            raise OperationalError("UPDATE dynamic_Product", {}, Exception("database is locked"))
        return real_update(document_id, changes, **kwargs)

    monkeypatch.setattr(products, "find_by_id_and_update", update_or_fail)

    result = catalog.propagator.propagate_changes("Category", category["_id"], {"name": "x"})

    assert result.propagated == 1
    assert [error["record_id"] for error in result.errors] == [locked["_id"]]
    assert "database is locked" in result.errors[0]["error"]
    assert crud.get_record_by_id("Product", other["_id"])[version_field("category")] == 1
    assert version_field("category") not in crud.get_record_by_id("Product", locked["_id"])


def test_dependent_deleted_during_stamping_is_reported(catalog, monkeypatch) -> None:
    crud = catalog.crud
    category = crud.create_record("Category", {"name": "Books"})
    product = crud.create_record("Product", {"title": "Novel", "category": category["_id"]})

    products = catalog.collections.get("Product")
    real_update = products.find_by_id_and_update

    def delete_then_update(document_id, changes, **kwargs):
        products.delete_by_id(document_id)
        return real_update(document_id, changes, **kwargs)

    monkeypatch.setattr(products, "find_by_id_and_update", delete_then_update)

    result = catalog.propagator.propagate_changes("Category", category["_id"])

    assert result.propagated == 0
    assert result.errors == [
        {
            "schema_name": "Product",
            "record_id": product["_id"],
            "field": "category",
            "error": f"Record with ID '{product['_id']}' not found in 'Product'",
        }
    ]

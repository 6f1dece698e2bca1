"""CRUD use cases for documents of dynamic schemas."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from docledger.application.use_cases.audit import VersionLedger, idempotency_key_for
from docledger.application.use_cases.schemas import SchemaRegistry
from docledger.config import Settings, get_settings
from docledger.domain.entities import (
    AUDIT_OPERATION_CREATE,
    AUDIT_OPERATION_DELETE,
    AUDIT_OPERATION_UPDATE,
    AUDIT_SOURCE_API,
    AUDIT_SOURCE_BULK,
    DOCUMENT_ID_FIELD,
    ORIGIN_API,
    ORIGIN_BULK,
    REVISION_FIELD,
    UPDATED_AT_FIELD,
    ActorContext,
    AuditLogEntry,
    Page,
    Pagination,
    strip_system_fields,
)
from docledger.domain.errors import (
    DocumentNotFound,
    InvalidPaginationError,
    InvalidRequestError,
    LogPersistenceFailure,
    RecordValidationError,
    SchemaNotFound,
)
from docledger.infrastructure.collections import CollectionRegistry, DynamicCollection
from docledger.infrastructure.schema_validation import validate_record

from .propagation import DependencyPropagator, PropagationResult

logger = logging.getLogger(__name__)

DEFAULT_RECORDS_LIMIT = 10


class DynamicCrudService:
    """Validate, store and audit documents of runtime-defined schemas.

    The document write always commits first. Its ledger entry follows, and a
    ledger failure is logged as a warning without failing the write.
    """

    def __init__(
        self,
        *,
        schemas: SchemaRegistry,
        collections: CollectionRegistry,
        ledger: VersionLedger,
        propagator: DependencyPropagator,
        settings: Settings | None = None,
    ) -> None:
        self._schemas = schemas
        self._collections = collections
        self._ledger = ledger
        self._propagator = propagator
        self._settings = settings or get_settings()

    def create_record(
        self,
        schema_name: str,
        data: Mapping[str, Any],
        *,
        actor: ActorContext | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        schema = self._schemas.require_schema(schema_name)
        payload = strip_system_fields(data)
        validate_record(schema.json_schema, payload)
        collection = self._collection(schema_name)

        document = collection.insert_one(payload, origin=ORIGIN_API)
        self._log_quietly(
            collection,
            document_id=document[DOCUMENT_ID_FIELD],
            operation=AUDIT_OPERATION_CREATE,
            previous_state=None,
            current_state=document,
            revision=document[REVISION_FIELD],
            actor=actor,
            metadata={"source": AUDIT_SOURCE_API, **dict(metadata or {})},
        )
        return document

    def update_record(
        self,
        schema_name: str,
        record_id: str,
        data: Mapping[str, Any],
        *,
        actor: ActorContext | None = None,
        metadata: Mapping[str, Any] | None = None,
        expected_revision: int | None = None,
    ) -> dict[str, Any]:
        """Merge ``data`` into the record and propagate to dependents."""

        schema = self._schemas.require_schema(schema_name)
        changes = strip_system_fields(data)
        validate_record(schema.json_schema, changes, partial=True)
        collection = self._collection(schema_name)

        before = collection.find_by_id(record_id)
        if before is None:
            raise DocumentNotFound(schema_name, record_id)

        after = collection.find_by_id_and_update(
            record_id,
            changes,
            expected_revision=expected_revision,
            origin=ORIGIN_API,
        )
        if after is None:
            raise DocumentNotFound(schema_name, record_id)

        self._log_quietly(
            collection,
            document_id=record_id,
            operation=AUDIT_OPERATION_UPDATE,
            previous_state=before,
            current_state=after,
            revision=after[REVISION_FIELD],
            actor=actor,
            metadata={"source": AUDIT_SOURCE_API, **dict(metadata or {})},
        )
        self._propagate_quietly(schema_name, record_id, changes)
        return after

    def delete_record(
        self,
        schema_name: str,
        record_id: str,
        *,
        actor: ActorContext | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> bool:
        self._schemas.require_schema(schema_name)
        collection = self._collection(schema_name)

        before = collection.delete_by_id(record_id, origin=ORIGIN_API)
        if before is None:
            raise DocumentNotFound(schema_name, record_id)

        self._log_quietly(
            collection,
            document_id=record_id,
            operation=AUDIT_OPERATION_DELETE,
            previous_state=before,
            current_state=None,
            revision=before[REVISION_FIELD],
            actor=actor,
            metadata={"source": AUDIT_SOURCE_API, **dict(metadata or {})},
        )
        self._propagate_quietly(schema_name, record_id, {"deleted": True})
        return True

    def bulk_create_records(
        self,
        schema_name: str,
        records: Sequence[Mapping[str, Any]],
        *,
        actor: ActorContext | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Insert every record or none of them, then audit them concurrently."""

        schema = self._schemas.require_schema(schema_name)
        payloads = self._validate_batch(schema.json_schema, records)
        collection = self._collection(schema_name)

        documents = collection.insert_many(payloads, origin=ORIGIN_BULK)
        entry_metadata = {
            "source": AUDIT_SOURCE_BULK,
            "bulk_operation": True,
            **dict(metadata or {}),
        }

        def _audit(document: dict[str, Any]) -> AuditLogEntry | None:
            return self._log_quietly(
                collection,
                document_id=document[DOCUMENT_ID_FIELD],
                operation=AUDIT_OPERATION_CREATE,
                previous_state=None,
                current_state=document,
                revision=document[REVISION_FIELD],
                actor=actor,
                metadata=entry_metadata,
            )

        workers = min(self._settings.bulk_max_workers, len(documents))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            entries = list(executor.map(_audit, documents))
        missing = sum(1 for entry in entries if entry is None)
        logger.info(
            "Bulk created %s records in %s (%s without audit entry)",
            len(documents),
            schema_name,
            missing,
        )
        return documents

    def import_records(
        self, schema_name: str, records: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]]:
        """Load records without writing ledger entries on this path.

        Imported writes carry no origin tag, so the change-feed listener is
        the one that records their history.
        """

        schema = self._schemas.require_schema(schema_name)
        payloads = self._validate_batch(schema.json_schema, records)
        documents = self._collection(schema_name).insert_many(payloads, origin=None)
        logger.info("Imported %s records into %s", len(documents), schema_name)
        return documents

    def get_records(
        self,
        schema_name: str,
        *,
        page: int = 1,
        limit: int = DEFAULT_RECORDS_LIMIT,
        filters: Mapping[str, Any] | None = None,
    ) -> Page[dict[str, Any]]:
        """Return one page of records, most recently created first."""

        self._schemas.require_schema(schema_name)
        max_limit = self._settings.audit_max_page_limit
        if page < 1:
            raise InvalidPaginationError("Page must be a positive integer")
        if not 1 <= limit <= max_limit:
            raise InvalidPaginationError(f"Limit must be an integer between 1 and {max_limit}")
        collection = self._collection(schema_name)
        total = collection.count(equals=filters)
        records = collection.find(equals=filters, skip=(page - 1) * limit, limit=limit)
        return Page(items=records, pagination=Pagination.build(page=page, limit=limit, total=total))

    def get_record_by_id(self, schema_name: str, record_id: str) -> dict[str, Any]:
        self._schemas.require_schema(schema_name)
        document = self._collection(schema_name).find_by_id(record_id)
        if document is None:
            raise DocumentNotFound(schema_name, record_id)
        return document

    def get_record_count(
        self, schema_name: str, *, filters: Mapping[str, Any] | None = None
    ) -> int:
        self._schemas.require_schema(schema_name)
        return self._collection(schema_name).count(equals=filters)

    def get_records_with_audit(
        self,
        schema_name: str,
        *,
        page: int = 1,
        limit: int = DEFAULT_RECORDS_LIMIT,
        filters: Mapping[str, Any] | None = None,
    ) -> Page[dict[str, Any]]:
        """Return :meth:`get_records` with an ``audit_info`` block per record."""

        result = self.get_records(schema_name, page=page, limit=limit, filters=filters)
        enriched = []
        for record in result.items:
            history = self._ledger.get_audit_history(
                record[DOCUMENT_ID_FIELD], schema_name, page=1, limit=1
            )
            latest = history.items[0] if history.items else None
            enriched.append(
                {
                    **record,
                    "audit_info": {
                        "total_versions": history.pagination.total_records,
                        "last_modified": latest.timestamp if latest else record.get(UPDATED_AT_FIELD),
                        "last_modified_by": latest.user_id if latest else None,
                        "can_revert": latest.can_revert if latest else False,
                    },
                }
            )
        return Page(items=enriched, pagination=result.pagination)

    def _collection(self, schema_name: str) -> DynamicCollection:
        collection = self._collections.get(schema_name)
        if collection is None:
            raise SchemaNotFound(schema_name)
        return collection

    @staticmethod
    def _validate_batch(
        json_schema: Mapping[str, Any], records: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]]:
        if not records:
            raise InvalidRequestError("Records must be a non-empty list")
        payloads = [strip_system_fields(record) for record in records]
        problems: list[str] = []
        for index, payload in enumerate(payloads):
            try:
                validate_record(json_schema, payload)
            except RecordValidationError as exc:
                problems.append(f"Record {index}: {', '.join(exc.errors)}")
        if problems:
            raise RecordValidationError("Validation failed", errors=problems)
        return payloads

    def _log_quietly(
        self,
        collection: DynamicCollection,
        *,
        document_id: str,
        operation: str,
        previous_state: Mapping[str, Any] | None,
        current_state: Mapping[str, Any] | None,
        revision: int,
        actor: ActorContext | None,
        metadata: Mapping[str, Any],
    ) -> AuditLogEntry | None:
        try:
            return self._ledger.log_change(
                document_id=document_id,
                schema_name=collection.schema_name,
                collection_name=collection.collection_name,
                operation=operation,
                previous_state=previous_state,
                current_state=current_state,
                actor=actor,
                metadata=metadata,
                idempotency_key=idempotency_key_for(operation, revision),
            )
        except LogPersistenceFailure as exc:
            logger.warning(
                "%s of %s/%s committed without an audit entry: %s",
                operation,
                collection.schema_name,
                document_id,
                exc.message,
            )
            return None

    def _propagate_quietly(
        self, schema_name: str, record_id: str, changes: Mapping[str, Any]
    ) -> PropagationResult | None:
        try:
            result = self._propagator.propagate_changes(schema_name, record_id, changes)
        except Exception:  # pragma: no cover - propagation never fails the write
            logger.warning(
                "Propagation for %s/%s failed", schema_name, record_id, exc_info=True
            )
            return None
        for error in result.errors:
            logger.warning(
                "Propagation to %s/%s failed: %s",
                error["schema_name"],
                error["record_id"],
                error["error"],
            )
        return result


__all__ = ["DEFAULT_RECORDS_LIMIT", "DynamicCrudService"]

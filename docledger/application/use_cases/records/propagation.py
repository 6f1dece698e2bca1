"""Stamp staleness markers on documents referencing a changed document."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError

from docledger.config import Settings, get_settings
from docledger.domain.entities import (
    DOCUMENT_ID_FIELD,
    ORIGIN_PROPAGATION,
    REFERENCE_TYPE_ARRAY,
    REVISION_FIELD,
    SchemaDefinition,
)
from docledger.domain.errors import (
    DocLedgerError,
    DocumentNotFound,
    RevisionConflict,
    SchemaNotFound,
)
from docledger.infrastructure.collections import CollectionRegistry
from docledger.utils import now_in_app_timezone

logger = logging.getLogger(__name__)


class SchemaSource(Protocol):
    def list_schemas(self, *, active: bool | None = None) -> Sequence[SchemaDefinition]:
        ...


def last_updated_field(field_name: str) -> str:
    return f"{field_name}_lastUpdated"


def version_field(field_name: str) -> str:
    return f"{field_name}_version"


@dataclass(frozen=True)
class DependentRecord:
    schema_name: str
    record_id: str
    field: str
    reference_type: str

    def to_dict(self) -> dict[str, str]:
        return {
            "schema_name": self.schema_name,
            "record_id": self.record_id,
            "field": self.field,
            "reference_type": self.reference_type,
        }


@dataclass
class PropagationResult:
    propagated: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    dependent_records: list[DependentRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "propagated": self.propagated,
            "errors": list(self.errors),
            "dependent_records": [item.to_dict() for item in self.dependent_records],
        }


class DependencyPropagator:
    """Find documents that reference a document and mark them as stale.

    Relationships are read from the active schema definitions on every call.
    The stamps written here are bookkeeping and produce no ledger entries.
    """

    def __init__(
        self,
        schemas: SchemaSource,
        collections: CollectionRegistry,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._schemas = schemas
        self._collections = collections
        self._settings = settings or get_settings()

    def find_dependent_records(
        self, schema_name: str, record_id: str
    ) -> list[DependentRecord]:
        dependents: list[DependentRecord] = []
        for schema in self._schemas.list_schemas(active=True):
            relationships = [
                item for item in schema.relationships if item.referenced_schema == schema_name
            ]
            if not relationships:
                continue
            collection = self._collections.get(schema.name)
            if collection is None:
                logger.debug("Schema %s has no registered collection; skipping", schema.name)
                continue
            for relationship in relationships:
                if relationship.reference_type == REFERENCE_TYPE_ARRAY:
                    documents = collection.find(contains={relationship.field: record_id})
                else:
                    documents = collection.find(equals={relationship.field: record_id})
                dependents.extend(
                    DependentRecord(
                        schema_name=schema.name,
                        record_id=document[DOCUMENT_ID_FIELD],
                        field=relationship.field,
                        reference_type=relationship.reference_type,
                    )
                    for document in documents
                )
        return dependents

    def propagate_changes(
        self,
        schema_name: str,
        record_id: str,
        changes: Mapping[str, Any] | None = None,
    ) -> PropagationResult:
        """Stamp ``<field>_lastUpdated`` and bump ``<field>_version`` on dependents.

        A failure on one dependent is recorded in ``errors`` and the others
        are still processed.
        """

        if changes:
            logger.debug(
                "Change of %s/%s touched fields %s", schema_name, record_id, sorted(changes)
            )
        result = PropagationResult()
        result.dependent_records = self.find_dependent_records(schema_name, record_id)
        for dependent in result.dependent_records:
            try:
                self._stamp(dependent)
            except DocLedgerError as exc:
                self._record_failure(result, schema_name, record_id, dependent, exc.message)
                continue
            except SQLAlchemyError as exc:
                self._record_failure(result, schema_name, record_id, dependent, str(exc))
                continue
            result.propagated += 1

        if result.dependent_records:
            logger.info(
                "Propagated change of %s/%s to %s of %s dependent records",
                schema_name,
                record_id,
                result.propagated,
                len(result.dependent_records),
            )
        return result

    @staticmethod
    def _record_failure(
        result: PropagationResult,
        schema_name: str,
        record_id: str,
        dependent: DependentRecord,
        message: str,
    ) -> None:
        logger.warning(
            "Could not propagate %s/%s to %s/%s: %s",
            schema_name,
            record_id,
            dependent.schema_name,
            dependent.record_id,
            message,
        )
        result.errors.append(
            {
                "schema_name": dependent.schema_name,
                "record_id": dependent.record_id,
                "field": dependent.field,
                "error": message,
            }
        )

    def _stamp(self, dependent: DependentRecord) -> None:
        collection = self._collections.get(dependent.schema_name)
        if collection is None:
            raise SchemaNotFound(dependent.schema_name)

        stamp_version = version_field(dependent.field)
        for _ in range(self._settings.store_write_retries):
            current = collection.find_by_id(dependent.record_id)
            if current is None:
                raise DocumentNotFound(dependent.schema_name, dependent.record_id)
            previous = current.get(stamp_version)
            next_version = (previous if isinstance(previous, int) else 0) + 1
            try:
                stamped = collection.find_by_id_and_update(
                    dependent.record_id,
                    {
                        last_updated_field(dependent.field): now_in_app_timezone().isoformat(),
                        stamp_version: next_version,
                    },
                    expected_revision=current[REVISION_FIELD],
                    origin=ORIGIN_PROPAGATION,
                )
            except RevisionConflict:
                continue
            if stamped is None:
                raise DocumentNotFound(dependent.schema_name, dependent.record_id)
            return
        raise RevisionConflict(
            f"Dependent record {dependent.record_id} kept changing while being stamped"
        )


__all__ = [
    "DependencyPropagator",
    "DependentRecord",
    "PropagationResult",
    "last_updated_field",
    "version_field",
]

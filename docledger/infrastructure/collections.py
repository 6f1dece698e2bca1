"""Document access for the dynamic per-schema collections."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import uuid4

from sqlalchemy import Engine, Table, delete, func, insert, select, update
from sqlalchemy.engine import Row

from docledger.domain.entities import (
    CHANGE_DELETE,
    CHANGE_INSERT,
    CHANGE_UPDATE,
    CREATED_AT_FIELD,
    DOCUMENT_ID_FIELD,
    REVISION_FIELD,
    SCHEMA_NAME_FIELD,
    UPDATED_AT_FIELD,
    ChangeEvent,
    SchemaDefinition,
    strip_system_fields,
)
from docledger.domain.errors import RevisionConflict
from docledger.infrastructure.change_feed import ChangeFeed
from docledger.infrastructure.dynamic_tables import create_collection_table
from docledger.utils import (
    ensure_app_naive_datetime,
    isoformat_or_none,
    now_in_app_timezone,
)

logger = logging.getLogger(__name__)


class DynamicCollection:
    """Read and write the documents of one schema.

    Each write is a single atomic read-modify-write on one row, guarded by
    the row's ``revision`` counter. Committed writes are published to the
    change feed with before/after images.
    """

    def __init__(
        self,
        *,
        engine: Engine,
        table: Table,
        schema_name: str,
        feed: ChangeFeed | None = None,
        write_retries: int = 3,
    ) -> None:
        self._engine = engine
        self._table = table
        self.schema_name = schema_name
        self._feed = feed
        self._write_retries = max(1, write_retries)

    @property
    def collection_name(self) -> str:
        return self._table.name

    def find_by_id(self, document_id: str) -> dict[str, Any] | None:
        with self._engine.connect() as connection:
            row = connection.execute(self._select_one(document_id)).first()
        return self._to_document(row) if row is not None else None

    def find(
        self,
        *,
        equals: Mapping[str, Any] | None = None,
        contains: Mapping[str, Any] | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return documents matching every criterion, newest first.

        ``equals`` compares a field to a value; ``contains`` matches list
        fields holding the value. Matching happens on the decoded JSON so it
        behaves the same on every database backend.
        """

        statement = (
            select(self._table)
            .where(self._table.c.schema_name == self.schema_name)
            .order_by(self._table.c.created_at.desc(), self._table.c.id.desc())
        )
        with self._engine.connect() as connection:
            rows = connection.execute(statement).all()

        matches = [
            document
            for document in (self._to_document(row) for row in rows)
            if _matches(document, equals=equals, contains=contains)
        ]
        end = None if limit is None else skip + limit
        return matches[skip:end]

    def count(self, *, equals: Mapping[str, Any] | None = None) -> int:
        if not equals:
            statement = (
                select(func.count())
                .select_from(self._table)
                .where(self._table.c.schema_name == self.schema_name)
            )
            with self._engine.connect() as connection:
                return int(connection.execute(statement).scalar() or 0)
        return len(self.find(equals=equals))

    def insert_one(
        self, data: Mapping[str, Any], *, origin: str | None = None
    ) -> dict[str, Any]:
        return self.insert_many([data], origin=origin)[0]

    def insert_many(
        self, documents: Sequence[Mapping[str, Any]], *, origin: str | None = None
    ) -> list[dict[str, Any]]:
        """Insert ``documents`` in one transaction and return the stored copies."""

        now = ensure_app_naive_datetime(now_in_app_timezone())
        values = [
            {
                "id": uuid4().hex,
                "schema_name": self.schema_name,
                "revision": 0,
                "created_at": now,
                "updated_at": now,
                "data": strip_system_fields(document),
            }
            for document in documents
        ]
        if not values:
            return []
        with self._engine.begin() as connection:
            connection.execute(insert(self._table), values)

        stored = [self._values_to_document(item) for item in values]
        for document in stored:
            self._publish(
                CHANGE_INSERT,
                document_id=document[DOCUMENT_ID_FIELD],
                revision=0,
                before=None,
                after=document,
                origin=origin,
            )
        return stored

    def find_by_id_and_update(
        self,
        document_id: str,
        changes: Mapping[str, Any],
        *,
        unset: Iterable[str] = (),
        replace: bool = False,
        expected_revision: int | None = None,
        origin: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply ``changes`` to the document and return its new state.

        With ``replace`` the business fields become exactly ``changes``.
        ``expected_revision`` turns the write into an optimistic concurrency
        check. Returns ``None`` when the document does not exist.
        """

        business_changes = strip_system_fields(changes)
        removed = [name for name in unset if name not in business_changes]

        for _ in range(self._write_retries):
            with self._engine.begin() as connection:
                row = connection.execute(self._select_one(document_id)).first()
                if row is None:
                    return None
                if expected_revision is not None and row.revision != expected_revision:
                    msg = (
                        f"Document {document_id} is at revision {row.revision}, "
                        f"expected {expected_revision}"
                    )
                    raise RevisionConflict(msg)

                data = {} if replace else dict(row.data or {})
                data.update(business_changes)
                for name in removed:
                    data.pop(name, None)

                now = ensure_app_naive_datetime(now_in_app_timezone())
                result = connection.execute(
                    update(self._table)
                    .where(self._table.c.id == document_id)
                    .where(self._table.c.revision == row.revision)
                    .values(data=data, revision=row.revision + 1, updated_at=now)
                )
                if result.rowcount != 1:
                    continue
                before = self._to_document(row)
                after = self._values_to_document(
                    {
                        "id": row.id,
                        "schema_name": row.schema_name,
                        "revision": row.revision + 1,
                        "created_at": row.created_at,
                        "updated_at": now,
                        "data": data,
                    }
                )
            self._publish(
                CHANGE_UPDATE,
                document_id=document_id,
                revision=after[REVISION_FIELD],
                before=before,
                after=after,
                origin=origin,
            )
            return after

        msg = f"Document {document_id} kept changing; gave up after {self._write_retries} attempts"
        raise RevisionConflict(msg)

    def delete_by_id(
        self, document_id: str, *, origin: str | None = None
    ) -> dict[str, Any] | None:
        """Delete the document and return its last state, if it existed."""

        for _ in range(self._write_retries):
            with self._engine.begin() as connection:
                row = connection.execute(self._select_one(document_id)).first()
                if row is None:
                    return None
                result = connection.execute(
                    delete(self._table)
                    .where(self._table.c.id == document_id)
                    .where(self._table.c.revision == row.revision)
                )
                if result.rowcount != 1:
                    continue
            before = self._to_document(row)
            self._publish(
                CHANGE_DELETE,
                document_id=document_id,
                revision=row.revision,
                before=before,
                after=None,
                origin=origin,
            )
            return before

        msg = f"Document {document_id} kept changing; gave up after {self._write_retries} attempts"
        raise RevisionConflict(msg)

    def _select_one(self, document_id: str):
        return (
            select(self._table)
            .where(self._table.c.id == document_id)
            .where(self._table.c.schema_name == self.schema_name)
        )

    def _publish(
        self,
        operation_type: str,
        *,
        document_id: str,
        revision: int,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        origin: str | None,
    ) -> None:
        if self._feed is None:
            return
        self._feed.publish(
            ChangeEvent(
                operation_type=operation_type,
                collection_name=self.collection_name,
                schema_name=self.schema_name,
                document_id=document_id,
                revision=revision,
                full_document=after,
                full_document_before_change=before,
                origin=origin,
                occurred_at=now_in_app_timezone(),
            )
        )

    @classmethod
    def _to_document(cls, row: Row) -> dict[str, Any]:
        return cls._values_to_document(row._mapping)

    @staticmethod
    def _values_to_document(values: Mapping[str, Any]) -> dict[str, Any]:
        document: dict[str, Any] = {
            DOCUMENT_ID_FIELD: values["id"],
            SCHEMA_NAME_FIELD: values["schema_name"],
            REVISION_FIELD: values["revision"],
            CREATED_AT_FIELD: isoformat_or_none(values["created_at"]),
            UPDATED_AT_FIELD: isoformat_or_none(values["updated_at"]),
        }
        document.update(values["data"] or {})
        return document


class CollectionRegistry:
    """Map schema names to their live :class:`DynamicCollection` handles.

    Owned by the service container: populated at startup, mutated when
    schemas are created, updated or deactivated, cleared at shutdown.
    """

    def __init__(self, engine: Engine, feed: ChangeFeed, *, write_retries: int = 3) -> None:
        self._engine = engine
        self._feed = feed
        self._write_retries = write_retries
        self._lock = threading.Lock()
        self._collections: dict[str, DynamicCollection] = {}

    def register(self, schema: SchemaDefinition) -> DynamicCollection:
        """Materialize the schema's table and (re)register its handle."""

        table = create_collection_table(self._engine, schema.collection_name)
        collection = DynamicCollection(
            engine=self._engine,
            table=table,
            schema_name=schema.name,
            feed=self._feed,
            write_retries=self._write_retries,
        )
        with self._lock:
            self._collections[schema.name] = collection
        logger.info(
            "Registered collection %s for schema %s", schema.collection_name, schema.name
        )
        return collection

    def unregister(self, schema_name: str) -> bool:
        with self._lock:
            return self._collections.pop(schema_name, None) is not None

    def get(self, schema_name: str) -> DynamicCollection | None:
        with self._lock:
            return self._collections.get(schema_name)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._collections)

    def clear(self) -> None:
        with self._lock:
            self._collections.clear()

    def __contains__(self, schema_name: object) -> bool:
        with self._lock:
            return schema_name in self._collections

    def __len__(self) -> int:
        with self._lock:
            return len(self._collections)


def _matches(
    document: Mapping[str, Any],
    *,
    equals: Mapping[str, Any] | None,
    contains: Mapping[str, Any] | None,
) -> bool:
    for field_name, expected in (equals or {}).items():
        if document.get(field_name) != expected:
            return False
    for field_name, expected in (contains or {}).items():
        value = document.get(field_name)
        if not isinstance(value, list) or expected not in value:
            return False
    return True


__all__ = ["CollectionRegistry", "DynamicCollection"]

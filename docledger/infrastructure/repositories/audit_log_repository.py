"""Persistence layer for ledger entries."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Query, Session

from docledger.domain.entities import AuditLogEntry, ChangedField
from docledger.infrastructure.models import AuditLogModel
from docledger.utils import (
    ensure_app_naive_datetime,
    ensure_app_timezone,
    now_in_app_timezone,
)


class AuditLogRepository:
    """Provide query and append helpers for :class:`AuditLogEntry` rows.

    Entries are append-only; the only in-place change is the one-time
    ``reverted_from`` backfill.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Insert ``entry`` and commit. Integrity errors propagate untouched."""

        model = AuditLogModel()
        self._apply_entity_to_model(model, entry)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def get(self, entry_id: int) -> AuditLogEntry | None:
        model = self.session.get(AuditLogModel, entry_id)
        return self._to_entity(model) if model is not None else None

    def get_by_version(
        self, document_id: str, schema_name: str, version: int
    ) -> AuditLogEntry | None:
        model = (
            self.session.query(AuditLogModel)
            .filter(AuditLogModel.document_id == document_id)
            .filter(AuditLogModel.schema_name == schema_name)
            .filter(AuditLogModel.version == version)
            .first()
        )
        return self._to_entity(model) if model is not None else None

    def get_by_idempotency_key(
        self, document_id: str, schema_name: str, idempotency_key: str
    ) -> AuditLogEntry | None:
        model = (
            self.session.query(AuditLogModel)
            .filter(AuditLogModel.document_id == document_id)
            .filter(AuditLogModel.schema_name == schema_name)
            .filter(AuditLogModel.idempotency_key == idempotency_key)
            .first()
        )
        return self._to_entity(model) if model is not None else None

    def get_latest_version(self, document_id: str, schema_name: str) -> int:
        """Return the highest recorded version for the document, or ``0``."""

        latest = self.session.execute(
            select(func.max(AuditLogModel.version))
            .where(AuditLogModel.document_id == document_id)
            .where(AuditLogModel.schema_name == schema_name)
        ).scalar()
        return int(latest or 0)

    def list_for_document(
        self,
        document_id: str,
        schema_name: str,
        *,
        operation: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[AuditLogEntry], int]:
        """Return one page of a document's entries, newest version first."""

        query = (
            self.session.query(AuditLogModel)
            .filter(AuditLogModel.document_id == document_id)
            .filter(AuditLogModel.schema_name == schema_name)
        )
        query = self._apply_filters(
            query, operation=operation, start_date=start_date, end_date=end_date
        )
        total = query.count()
        models = (
            query.order_by(AuditLogModel.version.desc(), AuditLogModel.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return [self._to_entity(model) for model in models], total

    def list_for_schema(
        self,
        schema_name: str,
        *,
        operation: str | None = None,
        user_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[list[AuditLogEntry], int]:
        """Return one page of a schema's entries, most recent first."""

        query = self.session.query(AuditLogModel).filter(
            AuditLogModel.schema_name == schema_name
        )
        query = self._apply_filters(
            query, operation=operation, start_date=start_date, end_date=end_date
        )
        if user_id is not None:
            query = query.filter(AuditLogModel.user_id == user_id)
        total = query.count()
        models = (
            query.order_by(AuditLogModel.timestamp.desc(), AuditLogModel.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return [self._to_entity(model) for model in models], total

    def count_by_operation(
        self, schema_name: str, *, since: datetime | None = None
    ) -> dict[str, int]:
        query = self.session.query(
            AuditLogModel.operation, func.count(AuditLogModel.id)
        ).filter(AuditLogModel.schema_name == schema_name)
        query = self._apply_filters(query, start_date=since)
        rows = query.group_by(AuditLogModel.operation).all()
        return {operation: int(count) for operation, count in rows}

    def count_distinct_documents(
        self, schema_name: str, *, since: datetime | None = None
    ) -> int:
        query = self.session.query(
            func.count(func.distinct(AuditLogModel.document_id))
        ).filter(AuditLogModel.schema_name == schema_name)
        query = self._apply_filters(query, start_date=since)
        return int(query.scalar() or 0)

    def count_older_than(
        self,
        cutoff: datetime,
        *,
        schema_name: str | None = None,
        operation: str | None = None,
    ) -> int:
        return self._older_than_query(
            cutoff, schema_name=schema_name, operation=operation
        ).count()

    def delete_older_than(
        self,
        cutoff: datetime,
        *,
        schema_name: str | None = None,
        operation: str | None = None,
    ) -> int:
        """Delete matching entries and return how many rows were removed.

        Kept entries are not touched, so a ``reverted_from`` id may point at
        an entry removed here.
        """

        doomed_ids = [
            entry_id
            for (entry_id,) in self._older_than_query(
                cutoff, schema_name=schema_name, operation=operation
            )
            .with_entities(AuditLogModel.id)
            .all()
        ]
        if not doomed_ids:
            return 0

        deleted = 0
        for chunk in _chunked(doomed_ids, 500):
            deleted += (
                self.session.query(AuditLogModel)
                .filter(AuditLogModel.id.in_(chunk))
                .delete(synchronize_session=False)
            )
        self.session.commit()
        return deleted

    def set_reverted_from(self, entry_id: int, target_entry_id: int) -> AuditLogEntry:
        """Attach the revert back-reference to a freshly written entry."""

        model = self.session.get(AuditLogModel, entry_id)
        if model is None:
            msg = f"Audit entry with id {entry_id} not found"
            raise ValueError(msg)
        if model.reverted_from is not None and model.reverted_from != target_entry_id:
            msg = f"Audit entry {entry_id} already references entry {model.reverted_from}"
            raise ValueError(msg)
        model.reverted_from = target_entry_id
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def _older_than_query(
        self,
        cutoff: datetime,
        *,
        schema_name: str | None,
        operation: str | None,
    ) -> Query:
        query = self.session.query(AuditLogModel).filter(
            AuditLogModel.timestamp < ensure_app_naive_datetime(cutoff)
        )
        if schema_name is not None:
            query = query.filter(AuditLogModel.schema_name == schema_name)
        if operation is not None:
            query = query.filter(AuditLogModel.operation == operation)
        return query

    @staticmethod
    def _apply_filters(
        query: Query,
        *,
        operation: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Query:
        if operation is not None:
            query = query.filter(AuditLogModel.operation == operation)
        if start_date is not None:
            query = query.filter(
                AuditLogModel.timestamp >= ensure_app_naive_datetime(start_date)
            )
        if end_date is not None:
            query = query.filter(
                AuditLogModel.timestamp <= ensure_app_naive_datetime(end_date)
            )
        return query

    @staticmethod
    def _to_entity(model: AuditLogModel) -> AuditLogEntry:
        return AuditLogEntry(
            id=model.id,
            document_id=model.document_id,
            schema_name=model.schema_name,
            collection_name=model.collection_name,
            operation=model.operation,
            previous_state=model.previous_state,
            current_state=model.current_state,
            version=model.version,
            changed_fields=[
                ChangedField(
                    field=item["field"],
                    old_value=item.get("old_value"),
                    new_value=item.get("new_value"),
                )
                for item in (model.changed_fields or [])
            ],
            user_id=model.user_id,
            user_agent=model.user_agent,
            ip_address=model.ip_address,
            timestamp=ensure_app_timezone(model.timestamp),
            can_revert=bool(model.can_revert),
            reverted_from=model.reverted_from,
            metadata=dict(model.entry_metadata or {}),
            idempotency_key=model.idempotency_key,
        )

    @staticmethod
    def _apply_entity_to_model(model: AuditLogModel, entry: AuditLogEntry) -> None:
        model.document_id = entry.document_id
        model.schema_name = entry.schema_name
        model.collection_name = entry.collection_name
        model.operation = entry.operation
        model.previous_state = entry.previous_state
        model.current_state = entry.current_state
        model.changed_fields = [item.to_dict() for item in entry.changed_fields]
        model.version = entry.version
        model.user_id = entry.user_id
        model.user_agent = entry.user_agent
        model.ip_address = entry.ip_address
        model.timestamp = ensure_app_naive_datetime(
            entry.timestamp or now_in_app_timezone()
        )
        model.can_revert = entry.can_revert
        model.reverted_from = entry.reverted_from
        model.entry_metadata = dict(entry.metadata or {})
        model.idempotency_key = entry.idempotency_key


def _chunked(values: list[Any], size: int) -> Iterable[list[Any]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


__all__ = ["AuditLogRepository"]

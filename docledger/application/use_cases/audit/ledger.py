"""Version ledger: append-only, per-document versioned audit entries."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from docledger.config import Settings, get_settings
from docledger.domain.entities import (
    AUDIT_OPERATION_CREATE,
    AUDIT_OPERATION_DELETE,
    AUDIT_OPERATION_UPDATE,
    AUDIT_OPERATIONS,
    SYSTEM_ACTOR,
    ActorContext,
    AuditLogEntry,
    Page,
    Pagination,
)
from docledger.domain.errors import (
    InvalidPaginationError,
    InvalidRequestError,
    InvalidVersionError,
    LogPersistenceFailure,
)
from docledger.infrastructure.repositories import AuditLogRepository
from docledger.utils import KeyedLock, now_in_app_timezone

from .diff import compute_changed_fields

logger = logging.getLogger(__name__)

TIMEFRAMES: dict[str, timedelta | None] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}
DEFAULT_TIMEFRAME = "30d"
RECENT_ACTIVITY_LIMIT = 10


def idempotency_key_for(operation: str, revision: int) -> str:
    """Key identifying the ledger entry of one storage-level write."""

    return f"{operation}:{revision}"


def ensure_version(version: Any) -> int:
    """Return ``version`` when it is a positive integer, else raise."""

    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise InvalidVersionError(
            f"Version must be a positive integer, got {version!r}"
        )
    return version


class VersionLedger:
    """Create and query :class:`AuditLogEntry` rows.

    The ledger is the only writer of audit storage. Version assignment for a
    ``(schema_name, document_id)`` pair is serialized with an in-process
    lock, and the ``(document_id, schema_name, version)`` unique constraint
    catches writers from other processes; a lost race is retried with a
    freshly computed version a bounded number of times.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        settings: Settings | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._locks = locks or KeyedLock()

    def log_change(
        self,
        *,
        document_id: str,
        schema_name: str,
        collection_name: str,
        operation: str,
        previous_state: Mapping[str, Any] | None = None,
        current_state: Mapping[str, Any] | None = None,
        actor: ActorContext | None = None,
        metadata: Mapping[str, Any] | None = None,
        idempotency_key: str | None = None,
        can_revert: bool = True,
    ) -> AuditLogEntry:
        """Append the next version of the document's history.

        When ``idempotency_key`` matches an existing entry of the same
        document, that entry is returned and nothing is written.
        """

        previous_state, current_state = _check_states(
            operation, previous_state, current_state
        )
        actor = actor or SYSTEM_ACTOR
        changed_fields = (
            compute_changed_fields(previous_state, current_state)
            if operation == AUDIT_OPERATION_UPDATE
            else []
        )

        attempts = self._settings.version_assignment_retries
        with self._locks.hold((schema_name, str(document_id))):
            with self._session_factory() as session:
                repository = AuditLogRepository(session)
                try:
                    if idempotency_key is not None:
                        existing = repository.get_by_idempotency_key(
                            str(document_id), schema_name, idempotency_key
                        )
                        if existing is not None:
                            logger.debug(
                                "Skipping duplicate ledger write %s for %s/%s",
                                idempotency_key,
                                schema_name,
                                document_id,
                            )
                            return existing

                    for attempt in range(1, attempts + 1):
                        version = repository.get_latest_version(str(document_id), schema_name) + 1
                        entry = AuditLogEntry(
                            id=None,
                            document_id=str(document_id),
                            schema_name=schema_name,
                            collection_name=collection_name,
                            operation=operation,
                            previous_state=previous_state,
                            current_state=current_state,
                            version=version,
                            changed_fields=changed_fields,
                            user_id=actor.user_id,
                            user_agent=actor.user_agent,
                            ip_address=actor.ip_address,
                            timestamp=now_in_app_timezone(),
                            can_revert=can_revert,
                            metadata=_to_json(dict(metadata or {})),
                            idempotency_key=idempotency_key,
                        )
                        try:
                            created = repository.create(entry)
                        except IntegrityError:
                            session.rollback()
                            logger.info(
                                "Version %s of %s/%s was taken by another writer (attempt %s/%s)",
                                version,
                                schema_name,
                                document_id,
                                attempt,
                                attempts,
                            )
                            continue
                        logger.debug(
                            "Logged %s v%s for %s/%s",
                            operation,
                            created.version,
                            schema_name,
                            document_id,
                        )
                        return created
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise LogPersistenceFailure(
                        f"Could not write audit entry for {schema_name}/{document_id}: {exc}"
                    ) from exc

        raise LogPersistenceFailure(
            f"Could not assign a version to {schema_name}/{document_id} "
            f"after {attempts} attempts"
        )

    def get_entry(
        self, document_id: str, schema_name: str, version: int
    ) -> AuditLogEntry | None:
        ensure_version(version)
        with self._session_factory() as session:
            return AuditLogRepository(session).get_by_version(
                str(document_id), schema_name, version
            )

    def get_latest_version(self, document_id: str, schema_name: str) -> int:
        with self._session_factory() as session:
            return AuditLogRepository(session).get_latest_version(
                str(document_id), schema_name
            )

    def set_reverted_from(self, entry_id: int, target_entry_id: int) -> AuditLogEntry:
        with self._session_factory() as session:
            try:
                return AuditLogRepository(session).set_reverted_from(entry_id, target_entry_id)
            except SQLAlchemyError as exc:
                session.rollback()
                raise LogPersistenceFailure(
                    f"Could not link audit entry {entry_id} to entry {target_entry_id}: {exc}"
                ) from exc

    def get_audit_history(
        self,
        document_id: str,
        schema_name: str,
        *,
        page: int = 1,
        limit: int | None = None,
        operation: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Page[AuditLogEntry]:
        """Return one page of a document's history, newest version first."""

        limit = self._check_page(page, limit, self._settings.audit_history_default_limit)
        _check_operation(operation)
        with self._session_factory() as session:
            entries, total = AuditLogRepository(session).list_for_document(
                str(document_id),
                schema_name,
                operation=operation,
                start_date=start_date,
                end_date=end_date,
                skip=(page - 1) * limit,
                limit=limit,
            )
        return Page(items=entries, pagination=Pagination.build(page=page, limit=limit, total=total))

    def get_schema_audit_history(
        self,
        schema_name: str,
        *,
        page: int = 1,
        limit: int | None = None,
        operation: str | None = None,
        user_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Page[AuditLogEntry]:
        """Return one page of every entry recorded for ``schema_name``."""

        limit = self._check_page(page, limit, self._settings.schema_history_default_limit)
        _check_operation(operation)
        with self._session_factory() as session:
            entries, total = AuditLogRepository(session).list_for_schema(
                schema_name,
                operation=operation,
                user_id=user_id,
                start_date=start_date,
                end_date=end_date,
                skip=(page - 1) * limit,
                limit=limit,
            )
        return Page(items=entries, pagination=Pagination.build(page=page, limit=limit, total=total))

    def get_document_versions(
        self,
        document_id: str,
        schema_name: str,
        *,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[dict[str, Any]]:
        """Return a compact listing of the document's versions."""

        history = self.get_audit_history(document_id, schema_name, page=page, limit=limit)
        versions = [
            {
                "version": entry.version,
                "operation": entry.operation,
                "timestamp": entry.timestamp,
                "user_id": entry.user_id,
                "changed_fields": [item.to_dict() for item in entry.changed_fields],
                "can_revert": entry.can_revert,
                "metadata": entry.metadata,
            }
            for entry in history.items
        ]
        return Page(items=versions, pagination=history.pagination)

    def get_audit_stats(
        self, schema_name: str, *, timeframe: str = DEFAULT_TIMEFRAME
    ) -> dict[str, Any]:
        """Count entries per operation over a recent window."""

        if timeframe not in TIMEFRAMES:
            raise InvalidRequestError(
                f"Timeframe must be one of {', '.join(TIMEFRAMES)}"
            )
        window = TIMEFRAMES[timeframe]
        since = now_in_app_timezone() - window if window is not None else None
        with self._session_factory() as session:
            repository = AuditLogRepository(session)
            per_operation = repository.count_by_operation(schema_name, since=since)
            unique_documents = repository.count_distinct_documents(schema_name, since=since)
        return {
            "schema_name": schema_name,
            "timeframe": timeframe,
            "total_audit_logs": sum(per_operation.values()),
            "unique_documents": unique_documents,
            "operations": {
                operation: per_operation.get(operation, 0) for operation in AUDIT_OPERATIONS
            },
        }

    def get_audit_summary(
        self, schema_name: str, *, timeframe: str = DEFAULT_TIMEFRAME
    ) -> dict[str, Any]:
        """Stats plus the most recent entries of the schema."""

        stats = self.get_audit_stats(schema_name, timeframe=timeframe)
        recent = self.get_schema_audit_history(
            schema_name, page=1, limit=RECENT_ACTIVITY_LIMIT
        )
        return {
            "stats": stats,
            "recent_activity": recent.items,
            "summary": {
                "total_operations": stats["total_audit_logs"],
                "unique_documents": stats["unique_documents"],
                "most_frequent_operation": _most_frequent(stats["operations"]),
                "timeframe": timeframe,
            },
        }

    def cleanup_old_audit_logs(
        self,
        *,
        older_than_days: int,
        schema_name: str | None = None,
        operation: str | None = None,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """Delete entries older than ``older_than_days``.

        With ``dry_run`` the matching entries are only counted. Future
        versions keep deriving from the highest remaining version.
        """

        if isinstance(older_than_days, bool) or not isinstance(older_than_days, int) or older_than_days < 0:
            raise InvalidRequestError("older_than_days must be a non-negative integer")
        _check_operation(operation)
        cutoff = now_in_app_timezone() - timedelta(days=older_than_days)
        with self._session_factory() as session:
            repository = AuditLogRepository(session)
            if dry_run:
                count = repository.count_older_than(
                    cutoff, schema_name=schema_name, operation=operation
                )
                logger.info(
                    "Audit cleanup dry run: %s entries older than %s would be deleted",
                    count,
                    cutoff.isoformat(),
                )
                return {"would_delete": count, "dry_run": True, "cutoff": cutoff}
            deleted = repository.delete_older_than(
                cutoff, schema_name=schema_name, operation=operation
            )
        logger.info("Audit cleanup removed %s entries older than %s", deleted, cutoff.isoformat())
        return {"deleted": deleted, "dry_run": False, "cutoff": cutoff}

    def _check_page(self, page: Any, limit: Any, default_limit: int) -> int:
        if limit is None:
            limit = default_limit
        max_limit = self._settings.audit_max_page_limit
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise InvalidPaginationError("Page must be a positive integer")
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= max_limit:
            raise InvalidPaginationError(f"Limit must be an integer between 1 and {max_limit}")
        return limit


def _check_states(
    operation: str,
    previous_state: Mapping[str, Any] | None,
    current_state: Mapping[str, Any] | None,
) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    if operation not in AUDIT_OPERATIONS:
        raise InvalidRequestError(
            f"Operation must be one of {', '.join(AUDIT_OPERATIONS)}, got {operation!r}"
        )
    if operation == AUDIT_OPERATION_CREATE:
        if current_state is None:
            raise InvalidRequestError("A create entry requires the current state")
        return None, _to_json(dict(current_state))
    if operation == AUDIT_OPERATION_DELETE:
        if previous_state is None:
            raise InvalidRequestError("A delete entry requires the previous state")
        return _to_json(dict(previous_state)), None
    if previous_state is None or current_state is None:
        raise InvalidRequestError("An update entry requires both previous and current state")
    return _to_json(dict(previous_state)), _to_json(dict(current_state))


def _check_operation(operation: str | None) -> None:
    if operation is not None and operation not in AUDIT_OPERATIONS:
        raise InvalidRequestError(
            f"Operation must be one of {', '.join(AUDIT_OPERATIONS)}"
        )


def _to_json(value: dict[str, Any]) -> dict[str, Any]:
    """Coerce ``value`` into plain JSON types for the JSON columns."""

    return json.loads(json.dumps(value, default=str))


def _most_frequent(operations: Mapping[str, int]) -> str | None:
    best, best_count = None, 0
    for operation, count in operations.items():
        if count > best_count:
            best, best_count = operation, count
    return best


__all__ = [
    "DEFAULT_TIMEFRAME",
    "TIMEFRAMES",
    "VersionLedger",
    "ensure_version",
    "idempotency_key_for",
]

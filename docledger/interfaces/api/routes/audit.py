"""Routes exposing document history, point-in-time state and reverts."""

from datetime import datetime

from fastapi import APIRouter, Depends, Path, Query

from docledger.application.container import ServiceContainer
from docledger.application.use_cases.audit import get_document_at_version
from docledger.application.use_cases.audit.ledger import DEFAULT_TIMEFRAME
from docledger.domain.entities import ActorContext
from docledger.domain.errors import DocLedgerError
from docledger.interfaces.api.dependencies import get_actor_context, get_container
from docledger.interfaces.api.routes_helpers import to_http_exception
from docledger.interfaces.api.schemas import (
    AuditHistoryRead,
    AuditLogRead,
    AuditStatsRead,
    AuditSummaryRead,
    BulkRevertRead,
    BulkRevertRequest,
    CleanupRead,
    CleanupRequest,
    DocumentAtVersionRead,
    DocumentVersionsRead,
    PaginationRead,
    RevertRead,
    RevertRequest,
    VersionComparisonRead,
)

router = APIRouter(prefix="/audit", tags=["audit"])

MAX_PAGE_LIMIT = 100


@router.get("/{schema_name}/history", response_model=AuditHistoryRead)
def read_schema_history(
    schema_name: str,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_LIMIT),
    operation: str | None = Query(default=None),
    user_id: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    container: ServiceContainer = Depends(get_container),
) -> AuditHistoryRead:
    """Return every ledger entry of ``schema_name``, newest first."""

    try:
        history = container.ledger.get_schema_audit_history(
            schema_name,
            page=page,
            limit=limit,
            operation=operation,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return AuditHistoryRead(
        audit_logs=[AuditLogRead.model_validate(entry) for entry in history.items],
        pagination=PaginationRead.model_validate(history.pagination),
    )


@router.get("/{schema_name}/stats", response_model=AuditStatsRead)
def read_audit_stats(
    schema_name: str,
    timeframe: str = Query(default=DEFAULT_TIMEFRAME),
    container: ServiceContainer = Depends(get_container),
) -> AuditStatsRead:
    try:
        stats = container.ledger.get_audit_stats(schema_name, timeframe=timeframe)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return AuditStatsRead.model_validate(stats)


@router.get("/{schema_name}/summary", response_model=AuditSummaryRead)
def read_audit_summary(
    schema_name: str,
    timeframe: str = Query(default=DEFAULT_TIMEFRAME),
    container: ServiceContainer = Depends(get_container),
) -> AuditSummaryRead:
    try:
        summary = container.ledger.get_audit_summary(schema_name, timeframe=timeframe)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return AuditSummaryRead(
        stats=AuditStatsRead.model_validate(summary["stats"]),
        recent_activity=[AuditLogRead.model_validate(entry) for entry in summary["recent_activity"]],
        summary=summary["summary"],
    )


def _run_cleanup(
    container: ServiceContainer, payload: CleanupRequest | None, schema_name: str | None
) -> CleanupRead:
    payload = payload or CleanupRequest()
    older_than_days = payload.older_than_days
    if older_than_days is None:
        older_than_days = container.settings.default_cleanup_days
    try:
        result = container.ledger.cleanup_old_audit_logs(
            older_than_days=older_than_days,
            schema_name=schema_name,
            operation=payload.operation,
            dry_run=payload.dry_run,
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return CleanupRead.model_validate(result)


@router.post("/cleanup", response_model=CleanupRead)
def cleanup_audit_logs(
    payload: CleanupRequest | None = None,
    container: ServiceContainer = Depends(get_container),
) -> CleanupRead:
    """Delete old ledger entries, optionally restricted to one schema."""

    return _run_cleanup(container, payload, payload.schema_name if payload else None)


@router.post("/{schema_name}/cleanup", response_model=CleanupRead)
def cleanup_schema_audit_logs(
    schema_name: str,
    payload: CleanupRequest | None = None,
    container: ServiceContainer = Depends(get_container),
) -> CleanupRead:
    return _run_cleanup(container, payload, schema_name)


@router.post("/{schema_name}/bulk-revert", response_model=BulkRevertRead)
def bulk_revert(
    schema_name: str,
    payload: BulkRevertRequest,
    container: ServiceContainer = Depends(get_container),
    actor: ActorContext = Depends(get_actor_context),
) -> BulkRevertRead:
    """Revert several documents; failures are reported per item."""

    items = [item.model_dump() for item in payload.operations]
    try:
        result = container.revert_engine.bulk_revert(
            schema_name, items, actor=actor, reason=payload.reason
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return BulkRevertRead(
        successful=result["successful"],
        failed=result["failed"],
        total_processed=len(items),
    )


@router.get("/{schema_name}/{document_id}/history", response_model=AuditHistoryRead)
def read_document_history(
    schema_name: str,
    document_id: str,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_LIMIT),
    operation: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    container: ServiceContainer = Depends(get_container),
) -> AuditHistoryRead:
    """Return the ledger entries of one document, highest version first."""

    try:
        history = container.ledger.get_audit_history(
            document_id,
            schema_name,
            page=page,
            limit=limit,
            operation=operation,
            start_date=start_date,
            end_date=end_date,
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return AuditHistoryRead(
        audit_logs=[AuditLogRead.model_validate(entry) for entry in history.items],
        pagination=PaginationRead.model_validate(history.pagination),
    )


@router.get("/{schema_name}/{document_id}/versions", response_model=DocumentVersionsRead)
def read_document_versions(
    schema_name: str,
    document_id: str,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_LIMIT),
    container: ServiceContainer = Depends(get_container),
) -> DocumentVersionsRead:
    try:
        versions = container.ledger.get_document_versions(
            document_id, schema_name, page=page, limit=limit
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return DocumentVersionsRead(
        document_id=document_id,
        schema_name=schema_name,
        versions=versions.items,
        pagination=PaginationRead.model_validate(versions.pagination),
    )


@router.get("/{schema_name}/{document_id}/compare", response_model=VersionComparisonRead)
def compare_versions(
    schema_name: str,
    document_id: str,
    from_version: int = Query(..., ge=1),
    to_version: int = Query(..., ge=1),
    container: ServiceContainer = Depends(get_container),
) -> VersionComparisonRead:
    """Field-level differences between two recorded versions."""

    try:
        comparison = container.revert_engine.compare_versions(
            document_id, schema_name, from_version, to_version
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return VersionComparisonRead.model_validate(comparison)


@router.get(
    "/{schema_name}/{document_id}/version/{version}",
    response_model=DocumentAtVersionRead,
)
def read_document_at_version(
    schema_name: str,
    document_id: str,
    version: int = Path(..., ge=1),
    container: ServiceContainer = Depends(get_container),
) -> DocumentAtVersionRead:
    """State of the document as recorded at ``version``."""

    try:
        snapshot = get_document_at_version(container.ledger, document_id, schema_name, version)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return DocumentAtVersionRead.model_validate(snapshot)


@router.post(
    "/{schema_name}/{document_id}/revert/{version}",
    response_model=RevertRead,
)
def revert_document(
    schema_name: str,
    document_id: str,
    version: int = Path(..., ge=1),
    payload: RevertRequest | None = None,
    container: ServiceContainer = Depends(get_container),
    actor: ActorContext = Depends(get_actor_context),
) -> RevertRead:
    """Restore the business fields recorded at ``version``."""

    payload = payload or RevertRequest()
    try:
        result = container.revert_engine.revert_to_version(
            document_id,
            schema_name,
            version,
            actor=actor,
            reason=payload.reason,
            expected_revision=payload.expected_revision,
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    audit_entry = result["audit_log"]
    return RevertRead(
        document=result["document"],
        audit_log=AuditLogRead.model_validate(audit_entry) if audit_entry is not None else None,
        reverted_from_version=result["reverted_from_version"],
    )


__all__ = ["router"]

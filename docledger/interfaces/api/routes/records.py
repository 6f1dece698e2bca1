"""Routes for CRUD operations on dynamic schema records."""

import asyncio
import logging
from functools import partial
from typing import Any

import anyio
from fastapi import APIRouter, Body, Depends, Query, Response, status

from docledger.application.container import ServiceContainer
from docledger.application.use_cases.records import DEFAULT_RECORDS_LIMIT
from docledger.domain.entities import ActorContext
from docledger.domain.errors import DocLedgerError, OperationTimeout
from docledger.interfaces.api.dependencies import get_actor_context, get_container
from docledger.interfaces.api.routes_helpers import to_http_exception
from docledger.interfaces.api.schemas import (
    PaginationRead,
    RecordBatchRead,
    RecordBatchRequest,
    RecordCountRead,
    RecordListRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["records"])

MAX_PAGE_LIMIT = 100


@router.post("/{schema_name}", status_code=status.HTTP_201_CREATED)
async def create_record(
    schema_name: str,
    data: dict[str, Any] = Body(...),
    container: ServiceContainer = Depends(get_container),
    actor: ActorContext = Depends(get_actor_context),
) -> dict[str, Any]:
    """Create a record, bounded by the configured operation timeout."""

    timeout = container.settings.operation_timeout_seconds
    create = partial(container.crud.create_record, schema_name, data, actor=actor)
    try:
        return await asyncio.wait_for(
            anyio.to_thread.run_sync(create, abandon_on_cancel=True), timeout=timeout
        )
    except asyncio.TimeoutError as exc:
        logger.warning("Creating a %s record exceeded %ss", schema_name, timeout)
        error = OperationTimeout(
            f"Creating the record took longer than {timeout:g}s; "
            "it may still have been stored"
        )
        raise to_http_exception(error) from exc
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{schema_name}", response_model=RecordListRead)
def list_records(
    schema_name: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_RECORDS_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    with_audit: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
) -> RecordListRead:
    """Return records of ``schema_name``, most recently created first."""

    fetch = container.crud.get_records_with_audit if with_audit else container.crud.get_records
    try:
        result = fetch(schema_name, page=page, limit=limit)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return RecordListRead(
        records=result.items,
        pagination=PaginationRead.model_validate(result.pagination),
    )


@router.post("/{schema_name}/bulk", response_model=RecordBatchRead, status_code=status.HTTP_201_CREATED)
def bulk_create_records(
    schema_name: str,
    payload: RecordBatchRequest,
    container: ServiceContainer = Depends(get_container),
    actor: ActorContext = Depends(get_actor_context),
) -> RecordBatchRead:
    try:
        records = container.crud.bulk_create_records(schema_name, payload.records, actor=actor)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return RecordBatchRead(records=records, count=len(records))


@router.post("/{schema_name}/import", response_model=RecordBatchRead, status_code=status.HTTP_201_CREATED)
def import_records(
    schema_name: str,
    payload: RecordBatchRequest,
    container: ServiceContainer = Depends(get_container),
) -> RecordBatchRead:
    """Load records whose history is recorded from the change feed."""

    try:
        records = container.crud.import_records(schema_name, payload.records)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return RecordBatchRead(records=records, count=len(records))


@router.get("/{schema_name}/count", response_model=RecordCountRead)
def count_records(
    schema_name: str,
    container: ServiceContainer = Depends(get_container),
) -> RecordCountRead:
    try:
        count = container.crud.get_record_count(schema_name)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return RecordCountRead(schema_name=schema_name, count=count)


@router.get("/{schema_name}/{record_id}")
def read_record(
    schema_name: str,
    record_id: str,
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    try:
        return container.crud.get_record_by_id(schema_name, record_id)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc


@router.put("/{schema_name}/{record_id}")
def update_record(
    schema_name: str,
    record_id: str,
    data: dict[str, Any] = Body(...),
    expected_revision: int | None = Query(default=None, ge=0),
    container: ServiceContainer = Depends(get_container),
    actor: ActorContext = Depends(get_actor_context),
) -> dict[str, Any]:
    """Merge ``data`` into the record and stamp its dependents."""

    try:
        return container.crud.update_record(
            schema_name,
            record_id,
            data,
            actor=actor,
            expected_revision=expected_revision,
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/{schema_name}/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_record(
    schema_name: str,
    record_id: str,
    container: ServiceContainer = Depends(get_container),
    actor: ActorContext = Depends(get_actor_context),
) -> Response:
    try:
        container.crud.delete_record(schema_name, record_id, actor=actor)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]

"""Routes for managing runtime-defined schemas."""

from functools import partial

import anyio
from fastapi import APIRouter, Depends, Query, Response, status

from docledger.application.container import ServiceContainer
from docledger.domain.errors import DocLedgerError, SchemaNotFound
from docledger.interfaces.api.dependencies import get_container
from docledger.interfaces.api.routes_helpers import to_http_exception
from docledger.interfaces.api.schemas import SchemaCreate, SchemaRead, SchemaUpdate

router = APIRouter(prefix="/schemas", tags=["schemas"])


@router.post("", response_model=SchemaRead, status_code=status.HTTP_201_CREATED)
async def create_schema(
    payload: SchemaCreate,
    container: ServiceContainer = Depends(get_container),
) -> SchemaRead:
    """Register a schema, materialize its collection and watch it for changes."""

    try:
        schema = await anyio.to_thread.run_sync(
            partial(
                container.schemas.create_schema,
                name=payload.name,
                json_schema=payload.json_schema,
                display_name=payload.display_name,
                description=payload.description,
            )
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    if container.listener.is_initialized:
        container.listener.add_schema_stream(schema)
    return SchemaRead.model_validate(schema)


@router.get("", response_model=list[SchemaRead])
def list_schemas(
    active: bool | None = Query(default=None),
    container: ServiceContainer = Depends(get_container),
) -> list[SchemaRead]:
    schemas = container.schemas.list_schemas(active=active)
    return [SchemaRead.model_validate(schema) for schema in schemas]


@router.get("/{name}", response_model=SchemaRead)
def read_schema(
    name: str,
    container: ServiceContainer = Depends(get_container),
) -> SchemaRead:
    schema = container.schemas.get_schema(name)
    if schema is None:
        raise to_http_exception(SchemaNotFound(name))
    return SchemaRead.model_validate(schema)


@router.put("/{name}", response_model=SchemaRead)
def update_schema(
    name: str,
    payload: SchemaUpdate,
    container: ServiceContainer = Depends(get_container),
) -> SchemaRead:
    try:
        schema = container.schemas.update_schema(
            name,
            display_name=payload.display_name,
            description=payload.description,
            json_schema=payload.json_schema,
        )
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    return SchemaRead.model_validate(schema)


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schema(
    name: str,
    container: ServiceContainer = Depends(get_container),
) -> Response:
    """Deactivate the schema. Its documents and history are kept."""

    try:
        await anyio.to_thread.run_sync(container.schemas.delete_schema, name)
    except DocLedgerError as exc:
        raise to_http_exception(exc) from exc
    container.listener.remove_schema_stream(name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]

"""Operational routes: health and change-feed status."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from docledger.application.container import ServiceContainer
from docledger.interfaces.api.dependencies import get_container
from docledger.interfaces.api.schemas import ChangeStreamStatusRead, HealthRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/health", response_model=HealthRead)
def health(container: ServiceContainer = Depends(get_container)) -> HealthRead:
    """Report database reachability and listener state."""

    try:
        with container.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        database = "unreachable"
    return HealthRead(
        status="healthy" if database == "connected" else "degraded",
        database=database,
        schemas=len(container.collections),
        change_streams=container.listener.get_status(),
    )


@router.get("/change-streams", response_model=ChangeStreamStatusRead)
def change_stream_status(
    container: ServiceContainer = Depends(get_container),
) -> ChangeStreamStatusRead:
    return ChangeStreamStatusRead.model_validate(container.listener.get_status())


__all__ = ["router"]

from fastapi import FastAPI

from .audit import router as audit_router
from .records import router as records_router
from .schemas import router as schemas_router
from .system import router as system_router


def register_routes(app: FastAPI) -> None:
    """Register every API router on the FastAPI application."""

    app.include_router(schemas_router)
    app.include_router(records_router)
    app.include_router(audit_router)
    app.include_router(system_router)

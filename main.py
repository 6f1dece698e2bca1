import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docledger.application.container import ServiceContainer
from docledger.config import Settings, get_settings
from docledger.interfaces.api.routes import register_routes


def create_app(
    settings: Settings | None = None,
    *,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or (container.settings if container else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the ledger services on startup and release them on shutdown."""

        logging.basicConfig(level=settings.log_level)
        services = container or ServiceContainer(settings)
        await services.startup()
        app.state.container = services
        try:
            yield
        finally:
            app.state.container = None
            await services.shutdown()

    app = FastAPI(title="DocLedger", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


app = create_app()

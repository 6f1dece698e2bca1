"""Composition root wiring the ledger services together."""

from __future__ import annotations

import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from docledger.application.change_feed_listener import ChangeFeedListener
from docledger.application.use_cases.audit import RevertEngine, VersionLedger
from docledger.application.use_cases.records import DependencyPropagator, DynamicCrudService
from docledger.application.use_cases.schemas import SchemaRegistry
from docledger.config import Settings, get_settings
from docledger.infrastructure.change_feed import ChangeFeed
from docledger.infrastructure.collections import CollectionRegistry
from docledger.infrastructure.database import (
    build_engine,
    build_session_factory,
    initialize_database,
)
from docledger.utils import KeyedLock

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Own every long-lived object of one application instance.

    Registries live here instead of module globals: collections are
    registered by :meth:`startup` and dropped by :meth:`shutdown`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        engine: Engine | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or build_engine(self.settings.database_url)
        self.session_factory: sessionmaker[Session] = build_session_factory(self.engine)
        self.feed = ChangeFeed()
        self.collections = CollectionRegistry(
            self.engine, self.feed, write_retries=self.settings.store_write_retries
        )
        self.schemas = SchemaRegistry(self.session_factory, self.collections)
        self.ledger = VersionLedger(
            self.session_factory, settings=self.settings, locks=KeyedLock()
        )
        self.revert_engine = RevertEngine(self.ledger, self.collections, settings=self.settings)
        self.propagator = DependencyPropagator(
            self.schemas, self.collections, settings=self.settings
        )
        self.crud = DynamicCrudService(
            schemas=self.schemas,
            collections=self.collections,
            ledger=self.ledger,
            propagator=self.propagator,
            settings=self.settings,
        )
        self.listener = ChangeFeedListener(
            feed=self.feed,
            schemas=self.schemas,
            ledger=self.ledger,
            settings=self.settings,
        )

    def initialize(self) -> None:
        """Create the ledger tables and register every active schema."""

        initialize_database(self.engine)
        self.schemas.initialize_collections()

    async def startup(self) -> None:
        self.initialize()
        if self.settings.change_feed_enabled:
            await self.listener.start()

    async def shutdown(self) -> None:
        await self.listener.shutdown()
        self.feed.close_all()
        self.collections.clear()
        self.engine.dispose()
        logger.info("Service container shut down")


__all__ = ["ServiceContainer"]

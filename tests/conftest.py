"""Shared fixtures: a throwaway SQLite database per test."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from docledger.application.container import ServiceContainer  # noqa: E402
from docledger.config import Settings  # noqa: E402

CATEGORY_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
    },
    "required": ["name"],
}

PRODUCT_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "price": {"type": "number", "minimum": 0},
        "category": {"type": "string", "x-ref": "Category"},
        "related": {"type": "array", "items": {"type": "string", "x-ref": "Category"}},
    },
    "required": ["title"],
}


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'docledger_test.db'}",
        change_feed_enabled=False,
        change_feed_retry_delay_seconds=0.3,
        change_feed_handler_timeout_seconds=5.0,
    )


@pytest.fixture()
def container(settings: Settings):
    """A fully initialized service container without the change-feed listener."""

    services = ServiceContainer(settings)
    services.initialize()
    yield services
    services.feed.close_all()
    services.collections.clear()
    services.engine.dispose()


@pytest.fixture()
def catalog(container: ServiceContainer) -> ServiceContainer:
    """Container with a ``Category`` schema and a ``Product`` schema referencing it."""

    container.schemas.create_schema(name="Category", json_schema=CATEGORY_SCHEMA)
    container.schemas.create_schema(name="Product", json_schema=PRODUCT_SCHEMA)
    return container


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"

"""Record ledger entries for document writes observed on the change feed."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any

import anyio

from docledger.application.use_cases.audit import VersionLedger, idempotency_key_for
from docledger.application.use_cases.schemas import SchemaRegistry
from docledger.config import Settings, get_settings
from docledger.domain.entities import (
    AUDIT_OPERATION_CREATE,
    AUDIT_OPERATION_DELETE,
    AUDIT_OPERATION_UPDATE,
    AUDIT_SOURCE_CHANGE_STREAM,
    CHANGE_DELETE,
    CHANGE_INSERT,
    CHANGE_UPDATE,
    COLLECTION_PREFIX,
    ORIGIN_API,
    ORIGIN_BULK,
    ORIGIN_PROPAGATION,
    ORIGIN_REVERT,
    ChangeEvent,
    SchemaDefinition,
)
from docledger.domain.errors import ChangeFeedError
from docledger.infrastructure.change_feed import ChangeFeed, ChangeSubscription
from docledger.utils import isoformat_or_none, now_in_app_timezone

logger = logging.getLogger(__name__)

STREAM_ACTIVE = "active"
STREAM_ERROR = "error"

_OPERATIONS = {
    CHANGE_INSERT: AUDIT_OPERATION_CREATE,
    CHANGE_UPDATE: AUDIT_OPERATION_UPDATE,
    CHANGE_DELETE: AUDIT_OPERATION_DELETE,
}

# Writers that record their own ledger entry on the direct path.
AUDITED_ORIGINS = frozenset({ORIGIN_API, ORIGIN_REVERT, ORIGIN_BULK})


@dataclass
class StreamState:
    schema_name: str
    collection_name: str
    subscription: ChangeSubscription
    task: asyncio.Task | None
    status: str
    started_at: datetime
    last_error: str | None = None
    error_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "started_at": isoformat_or_none(self.started_at),
            "collection_name": self.collection_name,
            "last_error": self.last_error,
            "error_at": isoformat_or_none(self.error_at),
        }


class ChangeFeedListener:
    """Turn change-feed events into ledger entries.

    One stream is opened per active schema plus a global stream over every
    dynamic collection that attaches a dedicated stream for schemas created
    after startup. Handler failures are logged and dropped. A failed stream
    is marked ``error`` and reattached once after a fixed delay; events
    published while it is down are not replayed.
    """

    def __init__(
        self,
        *,
        feed: ChangeFeed,
        schemas: SchemaRegistry,
        ledger: VersionLedger,
        settings: Settings | None = None,
    ) -> None:
        self._feed = feed
        self._schemas = schemas
        self._ledger = ledger
        self._settings = settings or get_settings()
        self._streams: dict[str, StreamState] = {}
        self._global_subscription: ChangeSubscription | None = None
        self._global_task: asyncio.Task | None = None
        self._retry_tasks: set[asyncio.Task] = set()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def start(self) -> None:
        """Open streams for every active schema. Calling it twice is a no-op."""

        if self._initialized:
            logger.info("Change feed listener already initialized")
            return

        schemas = await anyio.to_thread.run_sync(partial(self._schemas.list_schemas, active=True))
        for schema in schemas:
            self._attach(schema)

        self._global_subscription = self._feed.watch(collection_prefix=COLLECTION_PREFIX)
        self._global_task = asyncio.create_task(
            self._consume_global(self._global_subscription), name="change-feed-global"
        )
        self._initialized = True
        logger.info("Initialized change streams for %s schemas", len(schemas))

    async def shutdown(self) -> None:
        """Close every stream and forget them. Safe to call at any time."""

        for task in list(self._retry_tasks):
            task.cancel()
        self._retry_tasks.clear()

        tasks: list[asyncio.Task] = []
        for state in list(self._streams.values()):
            state.subscription.close()
            if state.task is not None:
                tasks.append(state.task)
        self._streams.clear()

        if self._global_subscription is not None:
            self._global_subscription.close()
            self._global_subscription = None
        if self._global_task is not None:
            tasks.append(self._global_task)
            self._global_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._initialized:
            logger.info("Change feed listener stopped")
        self._initialized = False

    def get_status(self) -> dict[str, Any]:
        return {
            "is_initialized": self._initialized,
            "total_streams": len(self._streams),
            "streams": {name: state.to_dict() for name, state in self._streams.items()},
        }

    def add_schema_stream(self, schema: SchemaDefinition) -> bool:
        """Attach a stream for ``schema`` unless one exists already."""

        if schema.name in self._streams:
            return False
        self._attach(schema)
        return True

    def remove_schema_stream(self, schema_name: str) -> bool:
        state = self._streams.pop(schema_name, None)
        if state is None:
            return False
        state.subscription.close()
        logger.info("Removed change stream for %s", schema_name)
        return True

    async def handle_event(self, event: ChangeEvent) -> None:
        """Log ``event`` in the ledger unless it is already audited elsewhere.

        Never raises: failures and timeouts are logged as warnings.
        """

        if event.origin == ORIGIN_PROPAGATION:
            return
        if self._settings.change_feed_skip_audited_origins and event.origin in AUDITED_ORIGINS:
            return
        operation = _OPERATIONS.get(event.operation_type)
        if operation is None:
            logger.warning("Unhandled change operation %s", event.operation_type)
            return

        metadata: dict[str, Any] = {
            "source": AUDIT_SOURCE_CHANGE_STREAM,
            "operation_type": event.operation_type,
            "event_id": event.event_id,
        }
        if event.origin is not None:
            metadata["origin"] = event.origin
        previous_state = event.full_document_before_change
        if operation == AUDIT_OPERATION_UPDATE and previous_state is None:
            previous_state = {}
            metadata["before_image_missing"] = True

        write = partial(
            self._ledger.log_change,
            document_id=event.document_id,
            schema_name=event.schema_name,
            collection_name=event.collection_name,
            operation=operation,
            previous_state=None if operation == AUDIT_OPERATION_CREATE else previous_state,
            current_state=None if operation == AUDIT_OPERATION_DELETE else event.full_document,
            metadata=metadata,
            idempotency_key=idempotency_key_for(operation, event.revision),
        )
        try:
            await asyncio.wait_for(
                anyio.to_thread.run_sync(write, abandon_on_cancel=True),
                timeout=self._settings.change_feed_handler_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out logging %s of %s/%s from the change feed",
                operation,
                event.schema_name,
                event.document_id,
            )
        except Exception as exc:
            logger.warning(
                "Could not log %s of %s/%s from the change feed: %s",
                operation,
                event.schema_name,
                event.document_id,
                exc,
            )
        else:
            logger.debug(
                "Change feed logged %s of %s/%s", operation, event.schema_name, event.document_id
            )

    def _attach(self, schema: SchemaDefinition) -> StreamState:
        subscription = self._feed.watch(schema.collection_name, schema_name=schema.name)
        state = StreamState(
            schema_name=schema.name,
            collection_name=schema.collection_name,
            subscription=subscription,
            task=None,
            status=STREAM_ACTIVE,
            started_at=now_in_app_timezone(),
        )
        state.task = asyncio.create_task(
            self._consume(state), name=f"change-feed-{schema.name}"
        )
        self._streams[schema.name] = state
        logger.info("Change stream active for %s", schema.collection_name)
        return state

    async def _consume(self, state: StreamState) -> None:
        try:
            async for event in state.subscription:
                await self.handle_event(event)
        except ChangeFeedError as exc:
            self._on_stream_error(state, exc)
        else:
            logger.info("Change stream closed for %s", state.collection_name)

    async def _consume_global(self, subscription: ChangeSubscription) -> None:
        try:
            async for event in subscription:
                if event.schema_name in self._streams:
                    continue
                schema = await anyio.to_thread.run_sync(self._schemas.get_schema, event.schema_name)
                if schema is None or schema.name in self._streams:
                    continue
                logger.info("New dynamic collection detected: %s", event.collection_name)
                self._attach(schema)
                await self.handle_event(event)
        except ChangeFeedError as exc:
            logger.error("Global change stream failed: %s", exc.message)

    def _on_stream_error(self, state: StreamState, error: ChangeFeedError) -> None:
        logger.error("Change stream error for %s: %s", state.schema_name, error.message)
        state.status = STREAM_ERROR
        state.last_error = error.message
        state.error_at = now_in_app_timezone()
        task = asyncio.create_task(self._reattach(state))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _reattach(self, state: StreamState) -> None:
        await asyncio.sleep(self._settings.change_feed_retry_delay_seconds)
        if self._streams.get(state.schema_name) is not state:
            return
        logger.info("Retrying change stream for %s", state.schema_name)
        state.subscription.close()
        self._streams.pop(state.schema_name, None)
        try:
            schema = await anyio.to_thread.run_sync(self._schemas.get_schema, state.schema_name)
        except Exception:  # pragma: no cover - retry is best effort
            logger.exception("Failed to restart change stream for %s", state.schema_name)
            return
        if schema is None:
            logger.info("Schema %s is gone; not restarting its stream", state.schema_name)
            return
        self._attach(schema)
        logger.info("Restarted change stream for %s", state.schema_name)


__all__ = ["AUDITED_ORIGINS", "ChangeFeedListener", "STREAM_ACTIVE", "STREAM_ERROR"]

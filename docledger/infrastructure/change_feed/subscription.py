"""Async iterator handed out to change-feed consumers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from docledger.domain.entities import ChangeEvent
from docledger.domain.errors import ChangeFeedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Failure:
    error: BaseException


_CLOSED = object()


class ChangeSubscription:
    """Queue-backed stream of :class:`ChangeEvent` objects.

    A subscription is bound to the event loop that created it; producers on
    any thread hand events over with :meth:`deliver`.
    """

    def __init__(
        self,
        *,
        collection_name: str | None = None,
        schema_name: str | None = None,
        collection_prefix: str | None = None,
        on_close: Callable[["ChangeSubscription"], None] | None = None,
    ) -> None:
        self.collection_name = collection_name
        self.schema_name = schema_name
        self.collection_prefix = collection_prefix
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        """Return whether ``event`` falls inside this subscription's filter."""

        if self.collection_name is not None and event.collection_name != self.collection_name:
            return False
        if self.schema_name is not None and event.schema_name != self.schema_name:
            return False
        if self.collection_prefix is not None and not event.collection_name.startswith(
            self.collection_prefix
        ):
            return False
        return True

    def deliver(self, event: ChangeEvent) -> None:
        """Enqueue ``event`` from any thread."""

        self._put(event)

    def fail(self, error: BaseException) -> None:
        """Make the consumer's next read raise :class:`ChangeFeedError`."""

        self._put(_Failure(error))

    def close(self) -> None:
        """Stop iteration after already queued events are consumed."""

        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED, force=True)
        if self._on_close is not None:
            self._on_close(self)

    def _put(self, item: object, *, force: bool = False) -> None:
        if self._closed and not force:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(item)
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # The owning loop is gone; nothing can consume this subscription.
            logger.debug("Dropping change event for a subscription whose loop is closed")
            self._closed = True

    def __aiter__(self) -> "ChangeSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            raise ChangeFeedError(str(item.error) or type(item.error).__name__) from item.error
        return item  # type: ignore[return-value]


__all__ = ["ChangeSubscription"]

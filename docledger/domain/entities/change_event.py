"""Storage-level notification emitted for every committed document write."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

CHANGE_INSERT = "insert"
CHANGE_UPDATE = "update"
CHANGE_DELETE = "delete"

ORIGIN_API = "api"
ORIGIN_REVERT = "revert"
ORIGIN_BULK = "bulk"
ORIGIN_PROPAGATION = "propagation"


@dataclass(frozen=True)
class ChangeEvent:
    """Before/after images of a single document write.

    ``origin`` tags the writer (``None`` for tools that bypass the service
    layer). ``revision`` is the document's revision counter after the write,
    or the last revision it had for deletes.
    """

    operation_type: str
    collection_name: str
    schema_name: str
    document_id: str
    revision: int
    full_document: dict[str, Any] | None
    full_document_before_change: dict[str, Any] | None
    origin: str | None = None
    occurred_at: datetime | None = None
    event_id: str = field(default_factory=lambda: uuid4().hex)


__all__ = [
    "ChangeEvent",
    "CHANGE_INSERT",
    "CHANGE_UPDATE",
    "CHANGE_DELETE",
    "ORIGIN_API",
    "ORIGIN_REVERT",
    "ORIGIN_BULK",
    "ORIGIN_PROPAGATION",
]

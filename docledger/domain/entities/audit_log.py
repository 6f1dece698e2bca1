"""Domain entity representing one immutable entry of a document's ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

AUDIT_OPERATION_CREATE = "create"
AUDIT_OPERATION_UPDATE = "update"
AUDIT_OPERATION_DELETE = "delete"
AUDIT_OPERATIONS = (
    AUDIT_OPERATION_CREATE,
    AUDIT_OPERATION_UPDATE,
    AUDIT_OPERATION_DELETE,
)

AUDIT_SOURCE_API = "api"
AUDIT_SOURCE_CHANGE_STREAM = "changeStream"
AUDIT_SOURCE_BULK = "bulk"


@dataclass(frozen=True)
class ChangedField:
    """Single field difference recorded on an ``update`` entry."""

    field: str
    old_value: Any = None
    new_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "old_value": self.old_value, "new_value": self.new_value}


@dataclass
class AuditLogEntry:
    """Captured state transition of a document.

    ``version`` is the authoritative ordering key for a document's history;
    ``timestamp`` is informative only and may interleave under concurrent
    writers.
    """

    id: int | None
    document_id: str
    schema_name: str
    collection_name: str
    operation: str
    previous_state: dict[str, Any] | None
    current_state: dict[str, Any] | None
    version: int
    changed_fields: list[ChangedField] = field(default_factory=list)
    user_id: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    timestamp: datetime | None = None
    can_revert: bool = True
    reverted_from: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    idempotency_key: str | None = None


__all__ = [
    "AuditLogEntry",
    "ChangedField",
    "AUDIT_OPERATIONS",
    "AUDIT_OPERATION_CREATE",
    "AUDIT_OPERATION_UPDATE",
    "AUDIT_OPERATION_DELETE",
    "AUDIT_SOURCE_API",
    "AUDIT_SOURCE_CHANGE_STREAM",
    "AUDIT_SOURCE_BULK",
]

"""Point-in-time lookups of document state."""

from __future__ import annotations

from typing import Any

from docledger.domain.errors import VersionNotFound

from .ledger import VersionLedger


def get_document_at_version(
    ledger: VersionLedger, document_id: str, schema_name: str, version: int
) -> dict[str, Any]:
    """Return the state recorded by the entry whose version is ``version``.

    Every entry stores a full snapshot, so no replay is involved. For a
    ``delete`` entry the returned ``state`` is ``None``.
    """

    entry = ledger.get_entry(document_id, schema_name, version)
    if entry is None:
        raise VersionNotFound(document_id, version)
    return {
        "version": entry.version,
        "timestamp": entry.timestamp,
        "operation": entry.operation,
        "state": entry.current_state,
        "changed_fields": [item.to_dict() for item in entry.changed_fields],
        "metadata": entry.metadata,
        "entry_id": entry.id,
        "can_revert": entry.can_revert,
    }


__all__ = ["get_document_at_version"]

"""System fields carried by every stored document."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

DOCUMENT_ID_FIELD = "_id"
SCHEMA_NAME_FIELD = "_schema_name"
REVISION_FIELD = "_revision"
CREATED_AT_FIELD = "_created_at"
UPDATED_AT_FIELD = "_updated_at"

SYSTEM_FIELDS = frozenset(
    {
        DOCUMENT_ID_FIELD,
        SCHEMA_NAME_FIELD,
        REVISION_FIELD,
        CREATED_AT_FIELD,
        UPDATED_AT_FIELD,
    }
)


def strip_system_fields(state: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return the business fields of ``state``."""

    if not state:
        return {}
    return {key: value for key, value in state.items() if key not in SYSTEM_FIELDS}


__all__ = [
    "DOCUMENT_ID_FIELD",
    "SCHEMA_NAME_FIELD",
    "REVISION_FIELD",
    "CREATED_AT_FIELD",
    "UPDATED_AT_FIELD",
    "SYSTEM_FIELDS",
    "strip_system_fields",
]

"""Domain entities describing runtime-defined document schemas."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

REFERENCE_TYPE_SINGLE = "single"
REFERENCE_TYPE_ARRAY = "array"
REFERENCE_TYPES = (REFERENCE_TYPE_SINGLE, REFERENCE_TYPE_ARRAY)

COLLECTION_PREFIX = "dynamic_"


@dataclass(frozen=True)
class Relationship:
    """Reference from a field of one schema to documents of another."""

    field: str
    referenced_schema: str
    reference_type: str = REFERENCE_TYPE_SINGLE

    def to_dict(self) -> dict[str, str]:
        return {
            "field": self.field,
            "referenced_schema": self.referenced_schema,
            "reference_type": self.reference_type,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Relationship":
        return cls(
            field=str(payload["field"]),
            referenced_schema=str(payload["referenced_schema"]),
            reference_type=str(payload.get("reference_type") or REFERENCE_TYPE_SINGLE),
        )


@dataclass
class SchemaDefinition:
    """JSON Schema backed entity type managed at runtime."""

    id: int | None
    name: str
    collection_name: str
    json_schema: dict[str, Any]
    display_name: str | None = None
    description: str | None = None
    relationships: list[Relationship] = field(default_factory=list)
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


def collection_name_for(schema_name: str) -> str:
    """Return the physical collection name used for ``schema_name``."""

    return f"{COLLECTION_PREFIX}{schema_name}"


def parse_relationships(json_schema: Mapping[str, Any]) -> list[Relationship]:
    """Derive reference relationships from ``x-ref`` property annotations.

    A property is a reference when it carries ``x-ref`` (optionally with
    ``x-ref-type: array``) or when it is an array whose ``items`` carry
    ``x-ref``.
    """

    properties = json_schema.get("properties") or {}
    relationships: list[Relationship] = []
    for field_name, definition in properties.items():
        if not isinstance(definition, Mapping):
            continue
        if definition.get("x-ref"):
            is_array = (
                definition.get("x-ref-type") == REFERENCE_TYPE_ARRAY
                or definition.get("type") == "array"
            )
            relationships.append(
                Relationship(
                    field=field_name,
                    referenced_schema=str(definition["x-ref"]),
                    reference_type=REFERENCE_TYPE_ARRAY if is_array else REFERENCE_TYPE_SINGLE,
                )
            )
            continue
        items = definition.get("items")
        if definition.get("type") == "array" and isinstance(items, Mapping) and items.get("x-ref"):
            relationships.append(
                Relationship(
                    field=field_name,
                    referenced_schema=str(items["x-ref"]),
                    reference_type=REFERENCE_TYPE_ARRAY,
                )
            )
    return relationships


__all__ = [
    "SchemaDefinition",
    "Relationship",
    "REFERENCE_TYPE_SINGLE",
    "REFERENCE_TYPE_ARRAY",
    "REFERENCE_TYPES",
    "COLLECTION_PREFIX",
    "collection_name_for",
    "parse_relationships",
]

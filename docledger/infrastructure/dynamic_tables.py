"""Utilities for creating per-schema document tables."""

from __future__ import annotations

import re

from sqlalchemy import Column, DateTime, Engine, Index, Integer, MetaData, String, Table
from sqlalchemy.exc import SQLAlchemyError

from docledger.infrastructure.database import json_type

_identifier_regex = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_MAX_IDENTIFIER_LENGTH = 63


class IdentifierError(ValueError):
    """Raised when an invalid SQL identifier is provided."""


def ensure_identifier(name: str, *, kind: str) -> str:
    """Validate ``name`` as a SQL identifier and return the normalized value."""

    candidate = name.strip()
    if len(candidate) > _MAX_IDENTIFIER_LENGTH:
        msg = (
            f"{kind.capitalize()} '{name}' exceeds the maximum length of "
            f"{_MAX_IDENTIFIER_LENGTH} characters"
        )
        raise IdentifierError(msg)
    if not _identifier_regex.match(candidate):
        msg = (
            f"{kind.capitalize()} '{name}' must begin with a letter or underscore "
            "and contain only letters, numbers, or underscores"
        )
        raise IdentifierError(msg)
    return candidate


def build_collection_table(collection_name: str, metadata: MetaData | None = None) -> Table:
    """Return the table definition used to store documents of one schema.

    Business fields live in the ``data`` JSON column; the remaining columns
    are the system fields every document carries.
    """

    safe_name = ensure_identifier(collection_name, kind="collection")
    metadata = metadata or MetaData()
    return Table(
        safe_name,
        metadata,
        Column("id", String(64), primary_key=True),
        Column("schema_name", String(63), nullable=False),
        Column("revision", Integer, nullable=False, default=0),
        Column("created_at", DateTime, nullable=False),
        Column("updated_at", DateTime, nullable=False),
        Column("data", json_type, nullable=False),
        Index(f"ix_{safe_name}_schema_created", "schema_name", "created_at"),
    )


def create_collection_table(engine: Engine, collection_name: str) -> Table:
    """Create the physical table for ``collection_name`` when missing."""

    table = build_collection_table(collection_name)
    try:
        table.metadata.create_all(bind=engine, tables=[table], checkfirst=True)
    except SQLAlchemyError as exc:  # pragma: no cover - passthrough for db layer
        msg = f"Could not create collection '{table.name}': {exc}"
        raise RuntimeError(msg) from exc
    return table


__all__ = [
    "IdentifierError",
    "build_collection_table",
    "create_collection_table",
    "ensure_identifier",
]

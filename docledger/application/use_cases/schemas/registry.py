"""Use cases managing runtime-defined document schemas."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from docledger.domain.entities import (
    SchemaDefinition,
    collection_name_for,
    parse_relationships,
)
from docledger.domain.errors import (
    SchemaAlreadyExists,
    SchemaDefinitionError,
    SchemaNotFound,
)
from docledger.infrastructure.collections import CollectionRegistry
from docledger.infrastructure.dynamic_tables import IdentifierError, ensure_identifier
from docledger.infrastructure.repositories import SchemaRepository
from docledger.infrastructure.schema_validation import check_json_schema

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """Persist schema definitions and keep the collection registry in sync."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        collections: CollectionRegistry,
    ) -> None:
        self._session_factory = session_factory
        self._collections = collections

    def create_schema(
        self,
        *,
        name: str,
        json_schema: dict[str, Any],
        display_name: str | None = None,
        description: str | None = None,
    ) -> SchemaDefinition:
        """Validate and store a new schema, then materialize its collection."""

        name = _check_name(name)
        check_json_schema(json_schema)
        with self._session_factory() as session:
            repository = SchemaRepository(session)
            if repository.get_by_name(name, include_inactive=True) is not None:
                raise SchemaAlreadyExists(name)
            entity = SchemaDefinition(
                id=None,
                name=name,
                collection_name=collection_name_for(name),
                json_schema=dict(json_schema),
                display_name=display_name or name,
                description=description,
                relationships=parse_relationships(json_schema),
                is_active=True,
            )
            try:
                created = repository.create(entity)
            except IntegrityError as exc:
                session.rollback()
                raise SchemaAlreadyExists(name) from exc

        self._collections.register(created)
        logger.info(
            "Created schema %s with %s relationships", name, len(created.relationships)
        )
        return created

    def list_schemas(self, *, active: bool | None = None) -> Sequence[SchemaDefinition]:
        with self._session_factory() as session:
            return SchemaRepository(session).list(active=active)

    def get_schema(self, name: str) -> SchemaDefinition | None:
        """Return the active schema called ``name``, if any."""

        with self._session_factory() as session:
            return SchemaRepository(session).get_by_name(name)

    def require_schema(self, name: str) -> SchemaDefinition:
        schema = self.get_schema(name)
        if schema is None:
            raise SchemaNotFound(name)
        return schema

    def update_schema(
        self,
        name: str,
        *,
        display_name: str | None = None,
        description: str | None = None,
        json_schema: dict[str, Any] | None = None,
    ) -> SchemaDefinition:
        """Update metadata and, when given, the JSON Schema of ``name``.

        A new JSON Schema re-derives the relationships and re-registers the
        collection handle.
        """

        if json_schema is not None:
            check_json_schema(json_schema)
        with self._session_factory() as session:
            repository = SchemaRepository(session)
            schema = repository.get_by_name(name, include_inactive=True)
            if schema is None:
                raise SchemaNotFound(name)
            if display_name:
                schema.display_name = display_name
            if description:
                schema.description = description
            if json_schema is not None:
                schema.json_schema = dict(json_schema)
                schema.relationships = parse_relationships(json_schema)
            updated = repository.update(schema)

        if json_schema is not None and updated.is_active:
            self._collections.unregister(name)
            self._collections.register(updated)
        logger.info("Updated schema %s", name)
        return updated

    def delete_schema(self, name: str) -> None:
        """Deactivate ``name``. Stored documents and history are kept."""

        with self._session_factory() as session:
            repository = SchemaRepository(session)
            schema = repository.get_by_name(name, include_inactive=True)
            if schema is None:
                raise SchemaNotFound(name)
            schema.is_active = False
            repository.update(schema)
        self._collections.unregister(name)
        logger.info("Deactivated schema %s", name)

    def initialize_collections(self) -> int:
        """Register a collection for every active schema and return how many."""

        schemas = self.list_schemas(active=True)
        for schema in schemas:
            self._collections.register(schema)
        logger.info("Loaded %s dynamic schemas", len(schemas))
        return len(schemas)

    def hot_reload(self, name: str) -> bool:
        schema = self.get_schema(name)
        if schema is None:
            return False
        self._collections.unregister(name)
        self._collections.register(schema)
        logger.info("Hot reloaded schema %s", name)
        return True


def _check_name(name: str) -> str:
    try:
        candidate = ensure_identifier(name or "", kind="schema name")
        ensure_identifier(collection_name_for(candidate), kind="collection")
    except IdentifierError as exc:
        raise SchemaDefinitionError(str(exc)) from exc
    return candidate


__all__ = ["SchemaRegistry"]

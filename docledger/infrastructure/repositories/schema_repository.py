"""Persistence layer for schema definitions."""

from collections.abc import Sequence

from sqlalchemy.orm import Session

from docledger.domain.entities import Relationship, SchemaDefinition
from docledger.infrastructure.models import SchemaDefinitionModel
from docledger.utils import (
    ensure_app_naive_datetime,
    ensure_app_timezone,
    now_in_app_timezone,
)


class SchemaRepository:
    """Provide CRUD operations for :class:`SchemaDefinition` rows."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, active: bool | None = None) -> Sequence[SchemaDefinition]:
        query = self.session.query(SchemaDefinitionModel)
        if active is not None:
            query = query.filter(SchemaDefinitionModel.is_active == active)
        query = query.order_by(
            SchemaDefinitionModel.created_at.desc(), SchemaDefinitionModel.id.desc()
        )
        return [self._to_entity(model) for model in query.all()]

    def get_by_name(
        self, name: str, *, include_inactive: bool = False
    ) -> SchemaDefinition | None:
        query = self.session.query(SchemaDefinitionModel).filter(
            SchemaDefinitionModel.name == name
        )
        if not include_inactive:
            query = query.filter(SchemaDefinitionModel.is_active.is_(True))
        model = query.first()
        return self._to_entity(model) if model else None

    def create(self, schema: SchemaDefinition) -> SchemaDefinition:
        model = SchemaDefinitionModel()
        self._apply_entity_to_model(model, schema)
        model.created_at = ensure_app_naive_datetime(
            schema.created_at or now_in_app_timezone()
        )
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def update(self, schema: SchemaDefinition) -> SchemaDefinition:
        model = (
            self.session.query(SchemaDefinitionModel)
            .filter(SchemaDefinitionModel.name == schema.name)
            .first()
        )
        if model is None:
            msg = f"Schema '{schema.name}' not found"
            raise ValueError(msg)
        self._apply_entity_to_model(model, schema)
        model.updated_at = ensure_app_naive_datetime(now_in_app_timezone())
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    @staticmethod
    def _to_entity(model: SchemaDefinitionModel) -> SchemaDefinition:
        return SchemaDefinition(
            id=model.id,
            name=model.name,
            collection_name=model.collection_name,
            json_schema=dict(model.json_schema or {}),
            display_name=model.display_name,
            description=model.description,
            relationships=[
                Relationship.from_dict(item) for item in (model.relationships or [])
            ],
            is_active=bool(model.is_active),
            created_at=ensure_app_timezone(model.created_at),
            updated_at=ensure_app_timezone(model.updated_at),
        )

    @staticmethod
    def _apply_entity_to_model(
        model: SchemaDefinitionModel, schema: SchemaDefinition
    ) -> None:
        model.name = schema.name
        model.display_name = schema.display_name
        model.description = schema.description
        model.collection_name = schema.collection_name
        model.json_schema = dict(schema.json_schema)
        model.relationships = [item.to_dict() for item in schema.relationships]
        model.is_active = schema.is_active


__all__ = ["SchemaRepository"]

"""SQLAlchemy model for runtime schema definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from docledger.infrastructure.database import Base, json_type


class SchemaDefinitionModel(Base):
    """Database representation of a JSON Schema backed entity type."""

    __tablename__ = "schema_definition"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(63), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    collection_name = Column(String(80), nullable=False, unique=True)
    json_schema = Column(json_type, nullable=False)
    relationships = Column(json_type, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)


__all__ = ["SchemaDefinitionModel"]

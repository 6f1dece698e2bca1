"""Schemas for schema definition endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RelationshipRead(BaseModel):
    field: str
    referenced_schema: str
    reference_type: str

    model_config = ConfigDict(from_attributes=True)


class SchemaCreate(BaseModel):
    """Payload required to register a schema."""

    name: str = Field(..., min_length=1, max_length=50)
    display_name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    json_schema: dict[str, Any]


class SchemaUpdate(BaseModel):
    display_name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    json_schema: dict[str, Any] | None = None

    model_config = ConfigDict(extra="forbid")


class SchemaRead(BaseModel):
    id: int
    name: str
    display_name: str | None
    description: str | None
    collection_name: str
    json_schema: dict[str, Any]
    relationships: list[RelationshipRead]
    is_active: bool
    created_at: datetime | None
    updated_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


__all__ = ["RelationshipRead", "SchemaCreate", "SchemaRead", "SchemaUpdate"]

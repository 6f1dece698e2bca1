"""Schemas for dynamic record endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from .common import PaginationRead


class RecordListRead(BaseModel):
    records: list[dict[str, Any]]
    pagination: PaginationRead


class RecordBatchRequest(BaseModel):
    records: list[dict[str, Any]] = Field(..., min_length=1)


class RecordBatchRead(BaseModel):
    records: list[dict[str, Any]]
    count: int


class RecordCountRead(BaseModel):
    schema_name: str
    count: int


__all__ = ["RecordBatchRead", "RecordBatchRequest", "RecordCountRead", "RecordListRead"]

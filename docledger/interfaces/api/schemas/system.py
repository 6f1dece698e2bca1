"""Schemas for operational endpoints."""

from typing import Any

from pydantic import BaseModel


class StreamStatusRead(BaseModel):
    status: str
    started_at: str | None
    collection_name: str
    last_error: str | None = None
    error_at: str | None = None


class ChangeStreamStatusRead(BaseModel):
    is_initialized: bool
    total_streams: int
    streams: dict[str, StreamStatusRead]


class HealthRead(BaseModel):
    status: str
    database: str
    schemas: int
    change_streams: dict[str, Any]


__all__ = ["ChangeStreamStatusRead", "HealthRead", "StreamStatusRead"]

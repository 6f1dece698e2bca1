"""Shared response fragments."""

from pydantic import BaseModel, ConfigDict


class PaginationRead(BaseModel):
    current_page: int
    total_pages: int
    total_records: int
    has_next_page: bool
    has_prev_page: bool
    limit: int

    model_config = ConfigDict(from_attributes=True)


class ErrorDetail(BaseModel):
    """Body of the ``detail`` field of every handled error."""

    message: str
    code: str
    errors: list[str] | None = None


__all__ = ["ErrorDetail", "PaginationRead"]

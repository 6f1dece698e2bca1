"""Paginated result containers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Pagination:
    current_page: int
    total_pages: int
    total_records: int
    has_next_page: bool
    has_prev_page: bool
    limit: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_records=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
            limit=limit,
        )


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    pagination: Pagination | None = None


__all__ = ["Page", "Pagination"]

"""Shared response envelope schemas."""

import math
from datetime import UTC, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Pagination(BaseModel):
    """Pagination metadata for list responses."""

    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        """Build pagination metadata, computing the page count."""
        return cls(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit))


class ApiResponse(BaseModel, Generic[T]):
    """Envelope returned by every endpoint."""

    success: bool = True
    data: T | None = None
    error: str | None = None
    message: str | None = None
    pagination: Pagination | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

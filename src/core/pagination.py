"""Offset-based pagination utilities."""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20


class PageParams(BaseModel):
    """Validated page/limit pair."""

    page: int = Field(1, ge=1, description="1-based page number")
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, description="Items per page")

    @property
    def offset(self) -> int:
        """Row offset for the requested page."""
        return (self.page - 1) * self.limit

    def clamp(self, max_limit: int) -> "PageParams":
        """Return a copy whose limit does not exceed ``max_limit``."""
        if self.limit <= max_limit:
            return self
        return PageParams(page=self.page, limit=max_limit)


class Pagination(BaseModel):
    """Pagination metadata returned alongside a page."""

    page: int = Field(..., description="Current page number")
    limit: int = Field(..., description="Page size used")
    total: int = Field(..., description="Total matching items")
    pages: int = Field(..., description="Total number of pages")


class OffsetPage(BaseModel, Generic[T]):
    """A page of results with offset pagination."""

    items: list[T] = Field(..., description="The items in this page")
    pagination: Pagination


def create_offset_page(items: list[T], params: PageParams, total: int) -> OffsetPage[T]:
    """Build a page from already-fetched items and an independently counted total.

    The total comes from a separate count query, so it may drift from the
    page contents under concurrent writes.
    """
    return OffsetPage(
        items=items,
        pagination=Pagination(
            page=params.page,
            limit=params.limit,
            total=total,
            pages=math.ceil(total / params.limit) if total else 0,
        ),
    )

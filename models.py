"""
Data models shared by the query engine and its callers
Using Pydantic for validation and serialization

- SortDirection: the only two orderings the engine emits
- PaginatedResponse: the envelope returned for every paginated fetch
"""

import math
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# ============================================================================
# Enums
# ============================================================================

class SortDirection(str, Enum):
    """Sort direction accepted from clients"""
    ASCENDING = "ascending"
    DESCENDING = "descending"

    @property
    def sql(self) -> str:
        return "ASC" if self is SortDirection.ASCENDING else "DESC"


# ============================================================================
# Response envelope
# ============================================================================

def compute_total_pages(total: int, page_size: int) -> int:
    """ceil(total / page_size); zero rows means zero pages."""
    if total <= 0 or page_size <= 0:
        return 0
    return math.ceil(total / page_size)


class PaginatedResponse(BaseModel, Generic[T]):
    """
    One page of records plus pagination metadata.

    total and total_pages stay None when counting was disabled for the call.
    They are left out of the envelope in that case rather than reported as
    zero, since zero would read as "no rows".
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    records: list[T] = Field(default_factory=list)
    page: int = Field(ge=1)
    page_size: int = Field(ge=1)
    total: Optional[int] = Field(default=None, ge=0)
    total_pages: Optional[int] = Field(default=None, ge=0)

    @classmethod
    def build(
        cls,
        records: list[T],
        page: int,
        page_size: int,
        total: Optional[int] = None,
    ) -> "PaginatedResponse[T]":
        total_pages = compute_total_pages(total, page_size) if total is not None else None
        return cls(
            records=records,
            page=page,
            page_size=page_size,
            total=total,
            total_pages=total_pages,
        )

    @property
    def has_totals(self) -> bool:
        return self.total is not None

    def to_envelope(self) -> dict[str, Any]:
        """Serialize to the wire shape, omitting totals when they were not computed."""
        exclude = None if self.has_totals else {"total", "total_pages"}
        return self.model_dump(mode="json", exclude=exclude)

"""Pagination — offset/limit arithmetic and the Page result type.

Invariants:
    - page >= 1 and limit >= 1, otherwise InvalidParametersError
    - offset = (page - 1) * limit
    - total_pages = ceil(total / limit)
    - has_next = page < total_pages  (equivalently page * limit < total)
    - has_prev = page > 1
    - len(data) <= limit

Design Decisions:
    - bool is rejected even though it subclasses int: page=True is a caller bug
"""

import math
from dataclasses import dataclass, field
from typing import Any

from strata.core.errors import InvalidParametersError


def _require_positive_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParametersError(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise InvalidParametersError(f"{name} must be >= 1, got {value}")


def validate_page_params(page: Any, limit: Any) -> None:
    _require_positive_int("page", page)
    _require_positive_int("limit", limit)


def compute_offset(page: int, limit: int) -> int:
    validate_page_params(page, limit)
    return (page - 1) * limit


def total_pages_for(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total > 0 else 0


@dataclass
class Page:
    """One window of a paginated query plus consistent navigation fields."""
    data: list[dict] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10
    total_pages: int = 0
    has_next: bool = False
    has_prev: bool = False

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "pagination": {
                "total": self.total,
                "page": self.page,
                "limit": self.limit,
                "total_pages": self.total_pages,
                "has_next": self.has_next,
                "has_prev": self.has_prev,
            },
        }


def build_page(data: list[dict], total: int, page: int, limit: int) -> Page:
    """Assemble a Page whose navigation fields follow from total/page/limit."""
    validate_page_params(page, limit)
    pages = total_pages_for(total, limit)
    return Page(
        data=list(data)[:limit],
        total=total,
        page=page,
        limit=limit,
        total_pages=pages,
        has_next=page < pages,
        has_prev=page > 1,
    )

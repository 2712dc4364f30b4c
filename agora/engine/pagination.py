"""
agora.engine.pagination — Page Math
====================================

Every listing computes ``total`` and the page rows with the same filter,
applies skip/limit in SQL, and only then assembles the rows.  This module
holds the arithmetic so all listings agree on it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class PageRequest:
    page: int = 1
    limit: int = 10

    @classmethod
    def build(
        cls,
        page: int | None,
        limit: int | None,
        *,
        default_limit: int = 10,
        max_limit: int = 100,
    ) -> PageRequest:
        """Clamp user input: page ≥ 1, 1 ≤ limit ≤ max_limit."""
        page = max(int(page or 1), 1)
        limit = int(limit or default_limit)
        limit = min(max(limit, 1), max_limit)
        return cls(page=page, limit=limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_result(data: list[Any], total: int, request: PageRequest) -> dict[str, Any]:
    """Wrap a page of rows with its pagination block."""
    total_pages = math.ceil(total / request.limit) if request.limit else 0
    return {
        "data": data,
        "pagination": {
            "page": request.page,
            "limit": request.limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": request.page < total_pages,
            "has_prev": request.page > 1,
        },
    }

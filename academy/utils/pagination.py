"""Page/limit parsing shared by list endpoints."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "total_pages": math.ceil(total / self.limit) if self.limit else 0,
        }


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_pagination(page: Any = None, limit: Any = None, *, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT) -> Pagination:
    """Normalize raw query values; invalid or out of range values fall back to defaults."""
    p = _to_int(page)
    if p is None or p < 1:
        p = DEFAULT_PAGE
    lim = _to_int(limit)
    if lim is None or lim < 1:
        lim = default_limit
    lim = min(lim, max_limit)
    return Pagination(page=p, limit=lim)

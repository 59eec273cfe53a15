# Overview: Page/limit normalization and the pagination envelope shared by list endpoints.

from __future__ import annotations

import math

MAX_PAGE_SIZE = 100


def normalize_page(page, limit, *, default_limit: int) -> tuple[int, int]:
    """Clamp page to >= 1 and limit to 1..MAX_PAGE_SIZE."""
    try:
        page = int(page) if page is not None else 1
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit) if limit is not None else default_limit
    except (TypeError, ValueError):
        limit = default_limit
    return max(1, page), max(1, min(limit, MAX_PAGE_SIZE))


def paginate(query, page: int, limit: int) -> tuple[list, dict]:
    """
    Run `query` for one page. The query must already be ordered.

    Returns (rows, pagination) where pagination is the envelope every
    list endpoint returns.
    """
    total_count = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total_count / limit) if total_count else 0
    return rows, {
        "page": page,
        "limit": limit,
        "total_count": total_count,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }

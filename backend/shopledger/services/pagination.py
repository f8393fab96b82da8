# Overview: Shared page/per_page handling for list endpoints.

from __future__ import annotations

from typing import Callable

from flask import current_app


def paginate(base_query, page: int | None, per_page: int | None, serialize: Callable) -> dict:
    """
    Apply offset pagination to an ordered query.

    Returns a dict with 'items', 'count' and 'pagination' metadata. per_page
    falls back to DEFAULT_PAGE_SIZE and is clamped to MAX_PAGE_SIZE.
    """
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 10)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)

    per_page = min(max(per_page or default_size, 1), max_size)
    page = max(page or 1, 1)

    total = base_query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }

# Overview: Shared page/limit handling for list endpoints.

from __future__ import annotations

from flask import current_app, has_app_context


def _limits() -> tuple[int, int]:
    if has_app_context():
        return current_app.config.get("DEFAULT_PAGE_SIZE", 20), current_app.config.get("MAX_PAGE_SIZE", 100)
    return 20, 100


def paginate(query, page: int | None, per_page: int | None, serialize=None) -> dict:
    """
    Run `query` one page at a time.

    Returns {"items", "count", "pagination": {...}}; `count` is the number of
    items on this page, `pagination.total` the number across all pages.
    """
    default_size, max_size = _limits()
    per_page = min(per_page or default_size, max_size)
    per_page = max(per_page, 1)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    serialize = serialize or (lambda row: row.to_dict())

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


def page_args(args) -> tuple[int | None, int | None]:
    """Read page and page size from query args (`limit` or `per_page`)."""
    page = args.get("page", type=int)
    per_page = args.get("limit", type=int) or args.get("per_page", type=int)
    return page, per_page

"""Pagination helpers for list endpoints."""
import math


def normalize_page(page, limit, default_limit=10, max_limit=100):
    """Coerce page/limit query values to sane positive integers."""
    try:
        page = int(page) if page is not None else 1
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit) if limit is not None else default_limit
    except (TypeError, ValueError):
        limit = default_limit

    page = max(page, 1)
    if limit <= 0:
        limit = default_limit
    return page, min(limit, max_limit)


def build_pagination(page: int, total_data: int, limit: int) -> dict:
    """
    Build the pagination block returned next to a page of results.

    Examples:
        build_pagination(1, 0, 10) -> total_page 0
        build_pagination(2, 25, 10) -> total_page 3
    """
    return {
        'current_page': page,
        'per_page': limit,
        'total_data': total_data,
        'total_page': math.ceil(total_data / limit) if limit else 0,
    }

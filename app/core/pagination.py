"""Pagination helpers."""

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


def paginate(page: int, limit: int, max_limit: int = MAX_LIMIT) -> tuple[int, int]:
    """Clamp page/limit; return (page, limit)."""
    limit = max(1, min(limit, max_limit))
    page = max(1, page)
    return page, limit

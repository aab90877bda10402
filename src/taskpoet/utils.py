from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, Union


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    limit: int,
    page: int,
) -> Dict[str, Any]:
    """
    Build a standard pagination envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        limit: The page size used for pagination.
        page: The 1-based page number.

    Returns:
        Dict with keys: items, total, limit, page, has_more.
    """
    # Ensure items is materialized as a list (in case an iterator is passed)
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    limit = int(max(limit, 0))
    page = int(max(page, 1))
    return {
        "items": materialized,
        "total": int(total),
        "limit": limit,
        "page": page,
        "has_more": limit * (page - 1) + len(materialized) < total,
    }


# PUBLIC_INTERFACE
def page_offset(limit: int, page: int) -> int:
    """Offset of the first item on a 1-based page."""
    return max(limit, 0) * (max(page, 1) - 1)

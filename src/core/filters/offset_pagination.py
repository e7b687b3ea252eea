"""
Offset-based pagination utilities.
"""

from collections.abc import Sequence
from typing import TypeVar

from core.models.pagination import PaginationInfo
from core.utils.constants import DEFAULT_LIMIT, DEFAULT_OFFSET

T = TypeVar("T")


class OffsetPagination:
    """
    Offset-based pagination helper.

    Typical usage:
    1. Validate offset and limit (done by the request model)
    2. Apply pagination to the full, already-sorted list of items
    3. Return the page along with its metadata
    """

    @staticmethod
    def paginate(
        items: Sequence[T],
        offset: int = DEFAULT_OFFSET,
        limit: int = DEFAULT_LIMIT,
    ) -> tuple[list[T], PaginationInfo]:
        """
        Paginate a list of items using offset and limit.

        Args:
            items: Full list of items to paginate
            offset: Number of items to skip from the start
            limit: Maximum number of items to include in the page

        Returns:
            A tuple of the current page and its pagination metadata

        Example:
            paginate([1, 2, 3, 4, 5], offset=0, limit=2)

            → ([1, 2], PaginationInfo(limit=2, offset=0, has_more=True, next_offset=2))
        """
        page = list(items[offset : offset + limit])
        has_more = offset + limit < len(items)

        return page, PaginationInfo(
            limit=limit,
            offset=offset,
            has_more=has_more,
            next_offset=offset + limit if has_more else None,
        )

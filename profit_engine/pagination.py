"""
In-memory pagination for report tables.

Page numbers are 1-indexed and clamped into range, so a stale page number
from a client (e.g. after a filter shrank the result) lands on the last page
instead of returning nothing.
"""

import logging
import math
from dataclasses import dataclass
from typing import Generic, List, Optional, Sequence, TypeVar

from profit_engine.config import PaginationConfig
from profit_engine.validators import validate_page, validate_page_size

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of items plus its position in the full result."""
    items: List[T]
    page: int
    page_size: int
    total: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


class Paginator:
    """
    Slices sorted rows into pages.

    Usage:
        paginator = Paginator(config.pagination)
        page = paginator.paginate(rows, page=3, page_size=25)

        for row in page.items:
            render(row)
    """

    def __init__(self, config: Optional[PaginationConfig] = None):
        """
        Initialize paginator.

        Args:
            config: Default and maximum page sizes
        """
        self.config = config or PaginationConfig()

    def resolve_page_size(self, page_size: Optional[int]) -> int:
        """Default, floor at 1 and cap a requested page size."""
        return validate_page_size(
            page_size,
            default=self.config.default_page_size,
            max_value=self.config.max_page_size,
        )

    def paginate(
        self,
        items: Sequence[T],
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Page[T]:
        """
        Return the requested page of items.

        Args:
            items: Full, already sorted result
            page: 1-indexed page number (clamped to [1, total_pages])
            page_size: Items per page (default and cap from config)

        Returns:
            Page with the sliced items and pagination metadata

        Raises:
            ValidationError: If page size is negative or page/page size are not integers
        """
        size = self.resolve_page_size(page_size)
        requested = validate_page(page)

        total = len(items)
        total_pages = max(1, math.ceil(total / size))
        current = min(max(requested, 1), total_pages)
        if current != requested:
            logger.debug(f"Clamped page {requested} to {current} of {total_pages}")

        start = (current - 1) * size
        return Page(
            items=list(items[start:start + size]),
            page=current,
            page_size=size,
            total=total,
            total_pages=total_pages,
        )


def paginate(
    items: Sequence[T],
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    config: Optional[PaginationConfig] = None,
) -> Page[T]:
    """Convenience wrapper around `Paginator.paginate`."""
    return Paginator(config).paginate(items, page=page, page_size=page_size)

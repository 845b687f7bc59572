"""Page models for paginated query results."""

import math
from collections.abc import Sequence

from pydantic import BaseModel

from tictactoe.logic.exceptions import InvalidArgumentError


class PageInfo(BaseModel):
    number: int
    size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool


class Page[T](BaseModel):
    content: list[T]
    page: PageInfo


def paginate[T](items: Sequence[T], page: int, size: int) -> Page[T]:
    """Slice an already-ordered sequence into one page.

    An empty sequence yields an empty page for page 0 with total_pages 0,
    flagged both first and last. Otherwise a page index at or past
    total_pages raises InvalidArgumentError.
    """
    if page < 0:
        raise InvalidArgumentError("Page number must be non-negative")
    if size <= 0:
        raise InvalidArgumentError("Page size must be positive")

    total_elements = len(items)
    if total_elements == 0:
        return Page(
            content=[],
            page=PageInfo(number=0, size=size, total_elements=0, total_pages=0, first=True, last=True),
        )

    total_pages = math.ceil(total_elements / size)
    if page >= total_pages:
        raise InvalidArgumentError(f"Page number {page} is out of range. Total pages: {total_pages}")

    offset = page * size
    return Page(
        content=list(items[offset : offset + size]),
        page=PageInfo(
            number=page,
            size=size,
            total_elements=total_elements,
            total_pages=total_pages,
            first=page == 0,
            last=page == total_pages - 1,
        ),
    )

from __future__ import annotations

import dataclasses as dc
import math
import typing as typ

from .errors import ConfigurationError

T = typ.TypeVar("T")


@dc.dataclass(frozen=True, slots=True)
class Page(typ.Generic[T]):
    page_number: int
    items: tuple[T, ...]
    total_pages: int

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages


def paginate(items: typ.Sequence[T], page_size: int) -> list[Page[T]]:
    """Split ``items`` into 1-indexed pages of at most ``page_size`` entries.

    An empty sequence still yields a single empty page so that the first page of
    a listing always exists.
    """
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
        raise ConfigurationError(f"page size must be an integer of at least 1, got {page_size!r}")
    total_pages = max(1, math.ceil(len(items) / page_size))
    pages = []
    for number in range(1, total_pages + 1):
        start = (number - 1) * page_size
        pages.append(Page(number, tuple(items[start : start + page_size]), total_pages))
    return pages


def page_url(base: str, number: int) -> str:
    base = base if base.endswith("/") else f"{base}/"
    if number <= 1:
        return base
    return f"{base}page/{number}/"


def page_window(current: int, total: int, radius: int = 2, span: int = 5) -> list[int | None]:
    """Page numbers to link around ``current``; ``None`` marks a gap.

    Shows ``radius`` pages either side of the current one, widened to ``span``
    pages at the ends of the range. The first and last pages are always
    present.
    """
    start = max(1, current - radius)
    end = min(total, current + radius)
    if end - start < span - 1 and total >= span:
        if start == 1:
            end = min(span, total)
        elif end == total:
            start = max(total - span + 1, 1)

    numbers: list[int | None] = []
    if start > 1:
        numbers.append(1)
        if start > 2:
            numbers.append(None)
    numbers.extend(range(start, end + 1))
    if end < total:
        if end < total - 1:
            numbers.append(None)
        numbers.append(total)
    return numbers

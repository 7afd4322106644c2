"""
Pagination Module

Offset pagination over a Query. The filtered count is taken once per request
and reused for every derived number ("X-Y of Z", last page).
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Tuple

from .query import Query
from .storage import StorageInterface


@dataclass(frozen=True)
class ResultPage:
    """One page of results plus the full filtered count"""
    rows: Tuple[Any, ...]
    total_count: int
    page_number: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size

    @property
    def last_page(self) -> int:
        if self.total_count == 0:
            return 1
        return (self.total_count + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        return self.page_number < self.last_page

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1

    @property
    def first_item(self) -> int:
        """1-based position of the first row shown (0 when the page is empty)"""
        return self.offset + 1 if self.rows else 0

    @property
    def last_item(self) -> int:
        return self.offset + len(self.rows) if self.rows else 0

    def map(self, func: Callable[[Any], Any]) -> 'ResultPage':
        """Same page with every row transformed"""
        return replace(self, rows=tuple(func(row) for row in self.rows))

    def summary(self) -> str:
        return f"{self.first_item}-{self.last_item} of {self.total_count}"

    def meta(self) -> Dict[str, Any]:
        return {
            'total_count': self.total_count,
            'page_number': self.page_number,
            'page_size': self.page_size,
            'last_page': self.last_page,
            'has_next': self.has_next,
            'has_previous': self.has_previous,
            'first_item': self.first_item,
            'last_item': self.last_item,
        }


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class Paginator:
    """Clamps page requests and fetches one window of a query"""

    def __init__(self, default_size: int = 15, max_size: int = 100):
        if default_size < 1 or max_size < default_size:
            raise ValueError("Page sizes must satisfy 1 <= default_size <= max_size")
        self.default_size = default_size
        self.max_size = max_size

    def clamp_size(self, size: Any = None) -> int:
        size = _as_int(size)
        if size is None:
            return self.default_size
        return max(1, min(size, self.max_size))

    @staticmethod
    def clamp_page(page: Any = None) -> int:
        page = _as_int(page)
        return page if page is not None and page >= 1 else 1

    def paginate(self, storage: StorageInterface, query: Query,
                 page: Any = None, size: Any = None) -> ResultPage:
        page_number = self.clamp_page(page)
        page_size = self.clamp_size(size)
        total = storage.count_matching(query)
        offset = (page_number - 1) * page_size
        rows = storage.fetch(query, limit=page_size, offset=offset) if offset < total else []
        return ResultPage(tuple(rows), total, page_number, page_size)

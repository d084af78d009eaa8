"""
=============================================================================
PAGINATION
=============================================================================

List endpoints take `page`, `pageSize`, `orderBy`, `orderDir` plus any
filter fields, return a page of items as the body, and put the total in
a header:

    GET /v1/users?page=2&pageSize=20&orderBy=name&orderDir=asc

    HTTP/1.1 200 OK
    X-Total-Count: 45
    Link: </v1/users?page=1&pageSize=20&orderBy=name&orderDir=asc>; rel="first",
          </v1/users?page=1&...>; rel="prev",
          </v1/users?page=3&...>; rel="next",
          </v1/users?page=3&...>; rel="last"

    [ {...}, {...}, ... 20 items ... ]

=============================================================================
PAGE ARITHMETIC
=============================================================================

    offset    = (page - 1) * page_size
    returned  = min(page_size, max(0, total - offset))
    last page = max(1, ceil(total / page_size))

A page past the end is not an error: it is an empty page with the real
total, so clients can tell "no more items" from "bad request".

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, TypeVar
from urllib.parse import urlencode
import math


T = TypeVar("T")


@dataclass(frozen=True)
class PagedResult(Generic[T]):
    """
    One page of a list.

    Invariants: page >= 1, page_size >= 1, total >= 0,
    len(items) <= page_size.
    """

    items: Sequence[T]
    page: int
    page_size: int
    total: int

    def __post_init__(self):
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")
        if self.total < 0:
            raise ValueError(f"total must be >= 0, got {self.total}")
        if len(self.items) > self.page_size:
            raise ValueError(
                f"{len(self.items)} items do not fit a page of {self.page_size}"
            )

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size)

    @property
    def last_page(self) -> int:
        return max(1, self.total_pages)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def paginate(items: Sequence[T], page: int, page_size: int) -> PagedResult[T]:
    """Slice an in-memory sequence into a PagedResult."""
    if page < 1 or page_size < 1:
        raise ValueError("page and page_size must be >= 1")
    start = (page - 1) * page_size
    return PagedResult(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total=len(items),
    )


@dataclass
class ListQuery:
    """
    The standard list parameters, gathered from bound arguments.

    `filters` holds every query parameter the list bindings did not claim
    (e.g. `?name=Ana&active=true`).
    """

    page: int = 1
    page_size: int = 20
    order_by: Optional[str] = None
    order_dir: str = "asc"
    filters: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_arguments(cls, args: Mapping[str, Any]) -> "ListQuery":
        return cls(
            page=args.get("page", 1),
            page_size=args.get("page_size", 20),
            order_by=args.get("order_by"),
            order_dir=args.get("order_dir", "asc"),
            filters=dict(args.get("filters") or {}),
        )

    @property
    def descending(self) -> bool:
        return self.order_dir == "desc"


def build_link_header(
    path: str,
    query_params: Mapping[str, List[str]],
    result: PagedResult,
    page_param: str = "page",
    size_param: str = "pageSize",
) -> Optional[str]:
    """
    Build an RFC 8288 Link header for a page.

    Other query parameters (filters, ordering) are carried over so every
    link stays on the same filtered list. Returns None when there is only
    one page and nothing to link to.
    """
    if result.last_page == 1 and result.page == 1:
        return None

    def link(page: int, rel: str) -> str:
        params = {k: list(v) for k, v in query_params.items()}
        params[page_param] = [str(page)]
        params[size_param] = [str(result.page_size)]
        return f'<{path}?{urlencode(params, doseq=True)}>; rel="{rel}"'

    links = [link(1, "first")]
    if result.has_previous:
        links.append(link(min(result.page - 1, result.last_page), "prev"))
    if result.has_next:
        links.append(link(result.page + 1, "next"))
    links.append(link(result.last_page, "last"))
    return ", ".join(links)

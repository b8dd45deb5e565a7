"""
Pagination helpers for Bitbucket list endpoints.

Bitbucket wraps every collection in an envelope of the form
``{"size": ..., "page": ..., "pagelen": ..., "next": ..., "values": [...]}``.
``normalize`` turns that into a ``NormalizedPage`` and ``build_query`` turns
``PaginationParams`` into the query string the API expects.
"""
from typing import Optional, Any, Mapping
from urllib.parse import quote

from servers.bitbucket_gateway.config import MAX_PAGE_SIZE
from servers.bitbucket_gateway.models import PaginationParams, NormalizedPage


def clamp_page_size(page_size: int, max_page_size: int = MAX_PAGE_SIZE) -> int:
    return max(1, min(page_size, max_page_size))


def build_query(
    params: Optional[PaginationParams] = None,
    max_page_size: int = MAX_PAGE_SIZE,
    **filters: Any
) -> str:
    """
    Serialize pagination params and extra filters into a query string.

    Args:
        params: Pagination params for the call (omitted fields are left out)
        max_page_size: Upper bound applied to page_size before serializing
        **filters: Endpoint specific filters such as state or revision; None and empty values are skipped

    Returns:
        "?key=value&..." or an empty string when there is nothing to send.
    """
    parts = []

    if params is not None:
        parts.append(f"pagelen={clamp_page_size(params.page_size, max_page_size)}")
        if params.page:
            parts.append(f"page={params.page}")
        if params.query:
            parts.append(f"q={quote(params.query, safe='')}")
        if params.sort:
            parts.append(f"sort={quote(params.sort, safe='')}")

    for key, value in filters.items():
        if value is None or value == "":
            continue
        parts.append(f"{key}={quote(str(value), safe='')}")

    return f"?{'&'.join(parts)}" if parts else ""


def normalize(raw: Any) -> NormalizedPage:
    """Project a raw Bitbucket envelope onto a NormalizedPage. Malformed input yields empty fields."""
    if not isinstance(raw, Mapping):
        return empty_page()

    items = raw.get("values")
    if not isinstance(items, list):
        items = []

    total = raw.get("size")
    if isinstance(total, bool) or not isinstance(total, int):
        total = None

    next_link = raw.get("next")
    if not isinstance(next_link, str) or not next_link:
        next_link = None

    return NormalizedPage(items=list(items), total=total, next_cursor=next_link)


def empty_page() -> NormalizedPage:
    return NormalizedPage(items=[])

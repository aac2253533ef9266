"""
Page size / page number normalisation and the page envelope returned by list endpoints
"""

import math
from typing import Any, List, Optional, Sequence, Tuple

from app.config.settings import settings


def normalize_pagination(per_page: Any, page: Any, options: Optional[Sequence[int]] = None) -> Tuple[int, int]:
    """Fall back to the default page size and to page 1 for anything unexpected."""
    options = options if options is not None else settings.get_per_page_options()
    try:
        valid_per_page = int(per_page)
    except (TypeError, ValueError):
        valid_per_page = settings.default_per_page
    if valid_per_page not in options:
        valid_per_page = settings.default_per_page

    try:
        valid_page = int(float(page))
    except (TypeError, ValueError, OverflowError):
        valid_page = 1
    if valid_page < 1:
        valid_page = 1
    return valid_per_page, valid_page


def page_range(per_page: int, page: int) -> Tuple[int, int]:
    """Inclusive row range for a PostgREST .range() call"""
    offset = (page - 1) * per_page
    return offset, offset + per_page - 1


def build_page(items: List[Any], total: int, per_page: int, page: int) -> dict:
    last_page = max(1, math.ceil(total / per_page)) if per_page else 1
    if items:
        first = (page - 1) * per_page + 1
        last = first + len(items) - 1
    else:
        first = last = None
    return {
        "data": items,
        "meta": {
            "current_page": page,
            "last_page": last_page,
            "from": first,
            "to": last,
            "total": total,
            "per_page": per_page,
        },
    }


def paginate_list(items: List[Any], per_page: int, page: int) -> dict:
    """Slice an in-memory list (merged roles/permissions are paged after grouping)"""
    offset = (page - 1) * per_page
    return build_page(items[offset:offset + per_page], len(items), per_page, page)

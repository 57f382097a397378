"""Pagination query parameters and envelope."""

import math
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Query

from taxrules.config import settings


@dataclass
class PageParams:
    page: int
    page_size: int


def get_page_params(
    page: Annotated[int, Query()] = 1,
    page_size: Annotated[int, Query()] = 0,
) -> PageParams:
    """Out-of-range values fall back to the defaults instead of failing."""
    if page < 1:
        page = 1
    if page_size < 1 or page_size > settings.max_page_size:
        page_size = settings.default_page_size
    return PageParams(page=page, page_size=page_size)


PageDep = Annotated[PageParams, Depends(get_page_params)]


def paginated(data: list, total: int, params: PageParams) -> dict:
    return {
        "data": data,
        "total": total,
        "page": params.page,
        "page_size": params.page_size,
        "total_pages": math.ceil(total / params.page_size) if total else 0,
    }

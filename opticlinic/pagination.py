# opticlinic/pagination.py
import math
from typing import Any, Type

from fastapi import Request
from pydantic import BaseModel
from sqlalchemy.orm import Query

DEFAULT_PER_PAGE = 15
MAX_PER_PAGE = 100


def clamp_per_page(per_page: int) -> int:
    return max(1, min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE))


def paginate(query: Query, request: Request, page: int, per_page: int, item_schema: Type[BaseModel]) -> dict:
    """Page a query into the ``{data, links, meta}`` envelope used by list endpoints."""
    per_page = clamp_per_page(per_page)
    page = max(page or 1, 1)
    total = query.order_by(None).count()
    last_page = max(math.ceil(total / per_page), 1)
    items = query.offset((page - 1) * per_page).limit(per_page).all()

    def page_url(number: int) -> str:
        return str(request.url.include_query_params(page=number, per_page=per_page))

    first_item = (page - 1) * per_page + 1 if items else None
    meta_links: list[dict[str, Any]] = [
        {"url": page_url(page - 1) if page > 1 else None, "label": "&laquo; Previous", "active": False}
    ]
    meta_links += [
        {"url": page_url(number), "label": str(number), "active": number == page}
        for number in range(1, last_page + 1)
    ]
    meta_links.append(
        {"url": page_url(page + 1) if page < last_page else None, "label": "Next &raquo;", "active": False}
    )

    return {
        "data": [item_schema.model_validate(item) for item in items],
        "links": {
            "first": page_url(1),
            "last": page_url(last_page),
            "prev": page_url(page - 1) if page > 1 else None,
            "next": page_url(page + 1) if page < last_page else None,
        },
        "meta": {
            "current_page": page,
            "from": first_item,
            "last_page": last_page,
            "links": meta_links,
            "path": str(request.url).split("?")[0],
            "per_page": per_page,
            "to": first_item + len(items) - 1 if items else None,
            "total": total,
        },
    }

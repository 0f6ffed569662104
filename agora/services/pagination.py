"""
agora.services.pagination — Bounded Result Windows
===================================================

``paginate()`` runs a ``select()`` twice: once wrapped in ``COUNT(*)`` for
the total, once with ``OFFSET``/``LIMIT`` for the window.  With
``pagination=False`` it returns every match as a single page.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from agora.engine.errors import InvalidArgument

T = TypeVar("T")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass(slots=True)
class Page(Generic[T]):
    docs: list[T]
    total_docs: int
    limit: int
    page: int
    total_pages: int

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def prev_page(self) -> int | None:
        return self.page - 1 if self.has_prev_page else None

    @property
    def next_page(self) -> int | None:
        return self.page + 1 if self.has_next_page else None

    def to_dict(self, project: Callable[[T], Any]) -> dict[str, Any]:
        return {
            "docs": [project(doc) for doc in self.docs],
            "total_docs": self.total_docs,
            "limit": self.limit,
            "page": self.page,
            "total_pages": self.total_pages,
            "has_prev_page": self.has_prev_page,
            "has_next_page": self.has_next_page,
            "prev_page": self.prev_page,
            "next_page": self.next_page,
        }


def paginate(
    session: Session,
    stmt: Select,
    *,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    pagination: bool = True,
) -> Page:
    """Execute *stmt* (a select of one ORM entity) as a :class:`Page`."""
    if page < 1:
        raise InvalidArgument("page must be >= 1")
    if limit < 1 or limit > MAX_LIMIT:
        raise InvalidArgument(f"limit must be between 1 and {MAX_LIMIT}")

    total = session.scalar(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ) or 0

    if not pagination:
        docs = list(session.scalars(stmt).all())
        return Page(docs=docs, total_docs=total, limit=max(total, 1), page=1, total_pages=1)

    offset = (page - 1) * limit
    docs = list(session.scalars(stmt.offset(offset).limit(limit)).all())
    return Page(
        docs=docs,
        total_docs=total,
        limit=limit,
        page=page,
        total_pages=max(1, math.ceil(total / limit)),
    )

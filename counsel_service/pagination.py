"""Keyset (cursor) pagination over ``(created_at, id)``.

A cursor is the string form of the last item's primary key. The next page
starts strictly after that row's ``(created_at, id)`` key, so inserts that sort
after the cursor never shift pages that were already handed out.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_service.errors import ValidationError
from counsel_service.validation import is_storable_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of results."""

    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


def parse_cursor(model: Any, cursor: str) -> Any:
    """Convert an opaque cursor back into a primary key value.

    Raises:
        ValidationError: If the cursor cannot be a key of ``model``
    """
    python_type = model.id.type.python_type
    try:
        key = python_type(cursor)
    except (TypeError, ValueError) as e:
        raise ValidationError("Invalid pagination cursor") from e

    if isinstance(key, int) and not is_storable_id(key):
        raise ValidationError("Invalid pagination cursor")
    return key


def _after(model: Any, created_at: Any, key: Any, descending: bool):
    """Row predicate for "strictly after (created_at, key)" in sort order."""
    if descending:
        return or_(
            model.created_at < created_at,
            and_(model.created_at == created_at, model.id < key),
        )
    return or_(
        model.created_at > created_at,
        and_(model.created_at == created_at, model.id > key),
    )


async def paginate(
    db: AsyncSession,
    stmt: Select,
    model: Any,
    *,
    limit: int,
    cursor: str | None = None,
    descending: bool = False,
) -> Page:
    """Fetch one page of ``stmt`` ordered by ``(model.created_at, model.id)``.

    Args:
        db: Database session
        stmt: Select of ``model`` carrying the collection's filters
        model: Mapped class with ``id`` and ``created_at`` columns
        limit: Page size (already clamped by the caller)
        cursor: ``next_cursor`` from the previous page
        descending: Newest first instead of oldest first

    Returns:
        Page with at most ``limit`` items

    Raises:
        ValidationError: If the cursor is malformed or not part of the collection
    """
    if cursor is not None:
        key = parse_cursor(model, cursor)
        # Resolve the cursor inside the same filtered collection
        anchor = (await db.execute(stmt.where(model.id == key))).scalar_one_or_none()
        if anchor is None:
            logger.debug(f"Cursor {cursor} not found in collection")
            raise ValidationError("Invalid pagination cursor")
        stmt = stmt.where(_after(model, anchor.created_at, anchor.id, descending))

    if descending:
        stmt = stmt.order_by(model.created_at.desc(), model.id.desc())
    else:
        stmt = stmt.order_by(model.created_at.asc(), model.id.asc())

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]
    next_cursor = str(items[-1].id) if has_more else None

    return Page(items=items, next_cursor=next_cursor, has_more=has_more)


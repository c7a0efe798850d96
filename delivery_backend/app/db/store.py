"""
Store primitives shared by the domain engines.

Uniqueness violations become ``ConflictError`` here, and state transitions
go through ``conditional_update`` so that a lost race shows up as zero
matched rows instead of a silent overwrite.
"""

import math
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from delivery_backend.app.core.exceptions import ConflictError


async def insert_unique(db: AsyncSession, obj: Any, message: str) -> Any:
    """
    Add a row and flush it, translating unique-index violations.

    Args:
        db: Database session
        obj: ORM instance to insert
        message: Conflict message reported to the caller

    Returns:
        The flushed instance (primary key populated)

    Raises:
        ConflictError: If a unique constraint rejected the row
    """
    db.add(obj)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(message) from exc
    return obj


async def commit_unique(db: AsyncSession, message: str) -> None:
    """Commit the pending unit of work, translating unique-index violations."""
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(message) from exc


async def conditional_update(
    db: AsyncSession,
    model: Any,
    criteria: Iterable[Any],
    values: Dict[str, Any],
) -> int:
    """
    Run ``UPDATE model SET values WHERE criteria`` and return the matched count.

    The criteria must include the expected prior state (status, owner...);
    a return value of 0 means the precondition no longer holds.
    """
    stmt = (
        update(model)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount or 0


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int,
    limit: int,
) -> Tuple[List[Any], int, int]:
    """
    Execute a filtered, ordered select one page at a time.

    Returns:
        (items, total, page_count)
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    offset = (page - 1) * limit
    result = await db.execute(query.offset(offset).limit(limit))
    items = list(result.scalars().all())

    page_count = math.ceil(total / limit) if limit else 0
    return items, total, page_count

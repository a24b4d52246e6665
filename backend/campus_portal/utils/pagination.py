"""
Pagination Utility Module

Provides standardized pagination helpers for all API endpoints.
"""
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from campus_portal.core.config import settings


def clamp_page(page: int, limit: int) -> tuple:
    """Ensure valid page and limit (limit capped at MAX_PAGE_SIZE)"""
    page = max(1, page)
    limit = max(1, min(settings.MAX_PAGE_SIZE, limit))
    return page, limit


def pagination_meta(total: int, page: int, limit: int) -> Dict[str, int]:
    """``{current, pages, total, limit}``"""
    return {
        "current": page,
        "pages": math.ceil(total / limit) if total > 0 else 0,
        "total": total,
        "limit": limit,
    }


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    limit: int = 10,
    count_query: Optional[Select] = None
) -> Dict[str, Any]:
    """
    Apply pagination to a SQLAlchemy query.

    Args:
        db: Database session
        query: Base SQLAlchemy query (ordering already applied)
        page: Page number (1-indexed)
        limit: Items per page
        count_query: Optional custom count query

    Returns:
        Dictionary with ``items`` (ORM objects) and ``pagination``
    """
    page, limit = clamp_page(page, limit)

    if count_query is None:
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    items: List[Any] = list(result.scalars().unique().all())

    return {
        "items": items,
        "pagination": pagination_meta(total, page, limit),
    }

"""Page-based pagination helpers."""

import math
from dataclasses import dataclass
from typing import Any

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.config import settings


@dataclass
class PaginationParams:
    """1-based page number and page size."""

    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def pagination_params(
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    page_size: int = Query(
        settings.pagination_page_size_default,
        ge=1,
        le=settings.pagination_page_size_max,
        description="Results per page",
    ),
) -> PaginationParams:
    """FastAPI dependency for page/page_size query parameters."""
    return PaginationParams(page=page, page_size=page_size)


async def count_rows(session: AsyncSession, query: Select) -> int:
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    return await session.scalar(count_query) or 0


def page_envelope(results: list[Any], total: int, params: PaginationParams) -> dict[str, Any]:
    return {
        "results": results,
        "total": total,
        "page": params.page,
        "page_size": params.page_size,
        "total_pages": math.ceil(total / params.page_size) if total else 0,
    }


async def paginate(
    session: AsyncSession,
    query: Select,
    params: PaginationParams,
    response_model: type[BaseModel] | None = None,
) -> dict[str, Any]:
    """Run a query one page at a time.

    Args:
        session: Database session
        query: Ordered select over a single ORM entity
        params: Page and page size
        response_model: Pydantic model to serialize each row with

    Returns:
        Envelope with results, total, page, page_size and total_pages
    """
    total = await count_rows(session, query)
    result = await session.execute(query.limit(params.page_size).offset(params.offset))
    rows = list(result.scalars().all())
    if response_model is not None:
        results = [response_model.model_validate(row).model_dump(mode="json") for row in rows]
    else:
        results = rows
    return page_envelope(results, total, params)

"""Problem statement catalog API endpoints."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.api.auth import Auth, RequireAdmin
from hackteam.api.pagination import PaginationParams, paginate, pagination_params
from hackteam.api.rate_limit import limit_admin, limit_read, limit_write
from hackteam.db import ProblemStatementDB, get_session
from hackteam.models import (
    CustomProblemStatementCreate,
    ProblemStatement,
    ProblemStatementCreate,
)
from hackteam.services import capacity

router = APIRouter()


@router.get("")
@limit_read
async def list_problem_statements(
    request: Request,
    auth: Auth,
    domain: str | None = Query(None, description="Filter by domain; 'all' disables the filter"),
    search: str | None = Query(
        None, description="Match title, description, domain, topic or technologies"
    ),
    params: PaginationParams = Depends(pagination_params),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """List the catalog plus the caller's own custom statement.

    Each entry carries its current selection count and remaining slots.
    """
    query = capacity.problem_statement_query(auth.user_id, domain=domain, search=search)
    return await paginate(session, query, params, response_model=ProblemStatement)


@router.post("", response_model=ProblemStatement, status_code=201)
@limit_admin
async def create_problem_statement(
    request: Request,
    problem: ProblemStatementCreate,
    auth: Auth,
    _: None = RequireAdmin,
    session: AsyncSession = Depends(get_session),
) -> ProblemStatementDB:
    """Add a problem statement to the shared catalog.

    Requires an organizer role.
    """
    return await capacity.create_catalog_statement(session, problem, auth.user_id)


@router.post("/custom", response_model=ProblemStatement, status_code=201)
@limit_write
async def create_custom_problem_statement(
    request: Request,
    problem: CustomProblemStatementCreate,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> ProblemStatementDB:
    """Propose a private problem statement, visible only to its author.

    Each user may own one. It is subject to the same selection cap as the catalog.
    """
    return await capacity.create_custom(session, auth.user_id, problem)


@router.get("/custom/mine", response_model=ProblemStatement)
@limit_read
async def get_my_custom_problem_statement(
    request: Request,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> ProblemStatementDB:
    """Get the caller's custom problem statement."""
    return await capacity.get_custom_statement(session, auth.user_id)


@router.get("/{problem_statement_id}", response_model=ProblemStatement)
@limit_read
async def get_problem_statement(
    request: Request,
    problem_statement_id: UUID,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> ProblemStatementDB:
    """Get a problem statement by ID. Other users' custom statements are not visible."""
    return await capacity.get_problem_statement(session, problem_statement_id, auth.user_id)

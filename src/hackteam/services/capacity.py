"""Problem statement catalog and its per-statement selection cap.

selection_count must always equal the number of teams referencing the
statement and never exceed problem_statement_selection_cap. Reservation is a
single conditional UPDATE, so two teams racing for the last slot cannot both
observe a free slot and both succeed.
"""

import logging
from uuid import UUID

from sqlalchemy import ColumnElement, Select, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.api.errors import ConflictError, ErrorCode, NotFoundError
from hackteam.config import settings
from hackteam.db.models import ProblemStatementDB
from hackteam.models.enums import ProblemStatementVisibility
from hackteam.models.problem_statement import (
    CustomProblemStatementCreate,
    ProblemStatementCreate,
)
from hackteam.services.audit import AuditAction, log_event
from hackteam.services.concurrency import flush_or_conflict
from hackteam.services.metrics import CONFLICTS

logger = logging.getLogger(__name__)


def visible_to(user_id: str) -> ColumnElement[bool]:
    """Catalog entries plus the user's own private entry."""
    return or_(
        ProblemStatementDB.visibility == ProblemStatementVisibility.CATALOG,
        ProblemStatementDB.created_by == user_id,
    )


async def get_problem_statement(
    session: AsyncSession, problem_statement_id: UUID, user_id: str
) -> ProblemStatementDB:
    """Load a problem statement the user is allowed to see.

    Raises:
        NotFoundError: If it does not exist or is another user's private entry
    """
    result = await session.execute(
        select(ProblemStatementDB)
        .where(ProblemStatementDB.id == problem_statement_id)
        .where(visible_to(user_id))
        .execution_options(populate_existing=True)
    )
    problem = result.scalar_one_or_none()
    if not problem:
        raise NotFoundError(ErrorCode.PROBLEM_STATEMENT_NOT_FOUND, "Problem statement not found")
    return problem


async def reserve_slot(session: AsyncSession, problem_statement_id: UUID, user_id: str) -> None:
    """Take one selection slot with a compare-and-increment.

    Raises:
        NotFoundError: If the statement does not exist or is not visible to the user
        ConflictError: If the statement already has the maximum number of teams
    """
    cap = settings.problem_statement_selection_cap
    result = await session.execute(
        update(ProblemStatementDB)
        .where(ProblemStatementDB.id == problem_statement_id)
        .where(visible_to(user_id))
        .where(ProblemStatementDB.selection_count < cap)
        .values(selection_count=ProblemStatementDB.selection_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    # Distinguish a missing statement from a full one
    await get_problem_statement(session, problem_statement_id, user_id)
    CONFLICTS.labels(ErrorCode.PROBLEM_STATEMENT_FULL).inc()
    logger.info("Problem statement %s is full (cap %d)", problem_statement_id, cap)
    raise ConflictError(
        ErrorCode.PROBLEM_STATEMENT_FULL,
        f"This problem statement has reached the maximum selection limit of {cap} teams.",
        details={"problem_statement_id": str(problem_statement_id), "selection_cap": cap},
    )


async def release_slot(session: AsyncSession, problem_statement_id: UUID) -> None:
    """Give back one selection slot, never going below zero."""
    result = await session.execute(
        update(ProblemStatementDB)
        .where(ProblemStatementDB.id == problem_statement_id)
        .where(ProblemStatementDB.selection_count > 0)
        .values(selection_count=ProblemStatementDB.selection_count - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("No slot to release on problem statement %s", problem_statement_id)


async def create_catalog_statement(
    session: AsyncSession, data: ProblemStatementCreate, actor_id: str
) -> ProblemStatementDB:
    """Add a shared catalog entry (organizers only)."""
    problem = ProblemStatementDB(
        title=data.title,
        description=data.description,
        domain=data.domain,
        topic=data.topic,
        suggested_technologies=data.suggested_technologies,
        selection_count=0,
        visibility=ProblemStatementVisibility.CATALOG,
    )
    session.add(problem)
    await flush_or_conflict(session)
    await log_event(
        session,
        entity_type="problem_statement",
        entity_id=problem.id,
        action=AuditAction.PROBLEM_STATEMENT_CREATED,
        actor_id=actor_id,
        payload={"title": problem.title, "domain": problem.domain},
    )
    logger.info("Catalog problem statement %s created by %s", problem.id, actor_id)
    return problem


async def create_custom(
    session: AsyncSession, user_id: str, data: CustomProblemStatementCreate
) -> ProblemStatementDB:
    """Create the user's private problem statement.

    Raises:
        ConflictError: If the user already owns a custom statement
    """
    existing = await session.execute(
        select(ProblemStatementDB.id).where(ProblemStatementDB.created_by == user_id)
    )
    if existing.first() is not None:
        raise ConflictError(
            ErrorCode.DUPLICATE_CUSTOM_STATEMENT,
            "You can only create one custom problem statement",
        )

    problem = ProblemStatementDB(
        title=data.title,
        description=data.description,
        domain=data.domain,
        topic=data.topic,
        suggested_technologies=data.suggested_technologies,
        selection_count=0,
        visibility=ProblemStatementVisibility.PRIVATE,
        created_by=user_id,
    )
    session.add(problem)
    await flush_or_conflict(session)
    await log_event(
        session,
        entity_type="problem_statement",
        entity_id=problem.id,
        action=AuditAction.PROBLEM_STATEMENT_CUSTOM_CREATED,
        actor_id=user_id,
        payload={"title": problem.title, "domain": problem.domain},
    )
    logger.info("Custom problem statement %s created by %s", problem.id, user_id)
    return problem


async def get_custom_statement(session: AsyncSession, user_id: str) -> ProblemStatementDB:
    result = await session.execute(
        select(ProblemStatementDB).where(ProblemStatementDB.created_by == user_id)
    )
    problem = result.scalar_one_or_none()
    if not problem:
        raise NotFoundError(
            ErrorCode.PROBLEM_STATEMENT_NOT_FOUND, "No custom problem statement found"
        )
    return problem


def problem_statement_query(
    user_id: str, domain: str | None = None, search: str | None = None
) -> Select:
    """Visible statements filtered by domain and free text, newest first.

    The search term is matched against title, description, domain, topic and
    suggested technologies. A domain of "all" means no domain filter.
    """
    query = select(ProblemStatementDB).where(visible_to(user_id))
    if domain and domain.strip() and domain.strip().lower() != "all":
        query = query.where(ProblemStatementDB.domain.icontains(domain.strip(), autoescape=True))
    if search and search.strip():
        term = search.strip()
        query = query.where(
            or_(
                ProblemStatementDB.title.icontains(term, autoescape=True),
                ProblemStatementDB.description.icontains(term, autoescape=True),
                ProblemStatementDB.domain.icontains(term, autoescape=True),
                ProblemStatementDB.topic.icontains(term, autoescape=True),
                ProblemStatementDB.suggested_technologies.icontains(term, autoescape=True),
            )
        )
    return query.order_by(ProblemStatementDB.created_at.desc(), ProblemStatementDB.id)

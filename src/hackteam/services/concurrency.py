"""Per-team serialization and translation of write races into typed errors.

Team mutations and vote writes lock the team row (SELECT ... FOR UPDATE) and
touch the team's optimistic version column. A writer that loses the race either
times out waiting for the lock or finds a stale version on flush; both surface
as CONCURRENT_MODIFICATION so the caller can re-synchronize. Unique constraints
are the last line of defence for the "one team per user", "one vote per
(voter, team)", "one custom statement per user" and team-name rules.
"""

import logging
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from hackteam.api.errors import APIError, ConflictError, ErrorCode, NotFoundError, StateError
from hackteam.config import settings
from hackteam.db.models import TeamDB
from hackteam.services.metrics import CONFLICTS

logger = logging.getLogger(__name__)


def _is_postgres(session: AsyncSession) -> bool:
    bind = session.bind
    return bind is not None and bind.dialect.name == "postgresql"


def _concurrent_modification() -> ConflictError:
    CONFLICTS.labels(ErrorCode.CONCURRENT_MODIFICATION).inc()
    return ConflictError(
        ErrorCode.CONCURRENT_MODIFICATION,
        "The team was modified by another request. Refresh and try again.",
    )


async def lock_team(session: AsyncSession, team_id: UUID) -> TeamDB:
    """Load a team with a row lock held until the transaction ends.

    Raises:
        NotFoundError: If the team does not exist
        ConflictError: If the lock could not be acquired within lock_timeout_ms
    """
    if _is_postgres(session):
        timeout_ms = int(settings.lock_timeout_ms)
        await session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))

    query = (
        select(TeamDB)
        .where(TeamDB.id == team_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    try:
        result = await session.execute(query)
    except DBAPIError as e:
        if "lock" in str(e.orig).lower():
            logger.warning("Timed out waiting for lock on team %s", team_id)
            raise _concurrent_modification() from e
        raise

    team = result.scalar_one_or_none()
    if not team:
        raise NotFoundError(ErrorCode.TEAM_NOT_FOUND, "Team not found")
    return team


def integrity_error_to_api_error(exc: IntegrityError) -> APIError:
    """Map a unique-constraint violation to the typed error its pre-check would raise."""
    message = str(exc.orig).lower()
    if "team_members" in message:
        return StateError(
            ErrorCode.ALREADY_IN_TEAM,
            "You are already a member of a team. Leave your current team first.",
        )
    if "votes" in message:
        return ConflictError(ErrorCode.DUPLICATE_VOTE, "You have already voted for this team")
    if "name_key" in message:
        return ConflictError(
            ErrorCode.DUPLICATE_TEAM_NAME,
            "Team name already exists. Please choose a different name.",
        )
    if "created_by" in message:
        return ConflictError(
            ErrorCode.DUPLICATE_CUSTOM_STATEMENT,
            "You can only create one custom problem statement",
        )
    return _concurrent_modification()


async def flush_or_conflict(session: AsyncSession) -> None:
    """Flush pending writes, translating races into typed errors.

    The request transaction is rolled back by the session dependency when the
    error propagates, so nothing flushed so far is committed.
    """
    try:
        await session.flush()
    except StaleDataError as e:
        logger.warning("Stale team version on flush: %s", e)
        raise _concurrent_modification() from e
    except IntegrityError as e:
        error = integrity_error_to_api_error(e)
        logger.warning("Constraint violation mapped to %s: %s", error.code, e.orig)
        raise error from e

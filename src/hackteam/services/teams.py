"""Team registry: lookups and the membership invariants every team must satisfy.

Invariants
----------
- 1 <= len(members) <= team_max_members
- exactly one member has role LEADER
- a user belongs to at most one team (unique user_id on team_members)
- team names are unique ignoring case (unique name_key)
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import Select, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.api.errors import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    StateError,
)
from hackteam.config import settings
from hackteam.db.models import TeamDB, TeamMemberDB
from hackteam.models.enums import MemberRole


class TeamInvariantError(RuntimeError):
    """A mutation would leave a team in an impossible state."""


def name_key(name: str) -> str:
    """Normalized team name used for case-insensitive uniqueness."""
    return name.strip().casefold()


def find_member(team: TeamDB, user_id: str) -> TeamMemberDB | None:
    for member in team.members:
        if member.user_id == user_id:
            return member
    return None


def get_leader(team: TeamDB) -> TeamMemberDB:
    for member in team.members:
        if member.role == MemberRole.LEADER:
            return member
    raise TeamInvariantError(f"Team {team.id} has no leader")


def is_leader(team: TeamDB, user_id: str) -> bool:
    member = find_member(team, user_id)
    return member is not None and member.role == MemberRole.LEADER


def require_leader(team: TeamDB, user_id: str, action: str) -> TeamMemberDB:
    """Return the caller's membership if they lead the team.

    Raises:
        ForbiddenError: If the caller is not the team's current leader
    """
    member = find_member(team, user_id)
    if member is None or member.role != MemberRole.LEADER:
        raise ForbiddenError(
            f"Only the team leader can {action}",
            code=ErrorCode.NOT_TEAM_LEADER,
        )
    return member


def earliest_joined(team: TeamDB, exclude_user_id: str) -> TeamMemberDB | None:
    """Earliest-joined member other than exclude_user_id; ties go to join order."""
    candidates = [m for m in team.members if m.user_id != exclude_user_id]
    if not candidates:
        return None
    return min(candidates, key=lambda m: (_as_utc(m.joined_at), m.join_order))


def next_join_order(team: TeamDB) -> int:
    return max((m.join_order for m in team.members), default=-1) + 1


def touch(team: TeamDB) -> None:
    """Mark the team row dirty so the optimistic version check runs on flush."""
    team.updated_at = datetime.now(UTC)


def verify_invariants(team: TeamDB) -> None:
    """Check size and leadership invariants before anything is flushed.

    Raises:
        TeamInvariantError: If the team would be persisted in a broken state
    """
    size = len(team.members)
    if not 1 <= size <= settings.team_max_members:
        raise TeamInvariantError(f"Team {team.id} would have {size} members")
    leaders = sum(1 for m in team.members if m.role == MemberRole.LEADER)
    if leaders != 1:
        raise TeamInvariantError(f"Team {team.id} would have {leaders} leaders")
    user_ids = [m.user_id for m in team.members]
    if len(set(user_ids)) != len(user_ids):
        raise TeamInvariantError(f"Team {team.id} lists a member twice")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


async def get_team(session: AsyncSession, team_id: UUID) -> TeamDB:
    """Load a team without locking.

    Raises:
        NotFoundError: If the team does not exist
    """
    result = await session.execute(select(TeamDB).where(TeamDB.id == team_id))
    team = result.scalar_one_or_none()
    if not team:
        raise NotFoundError(ErrorCode.TEAM_NOT_FOUND, "Team not found")
    return team


async def get_membership(session: AsyncSession, user_id: str) -> TeamMemberDB | None:
    result = await session.execute(select(TeamMemberDB).where(TeamMemberDB.user_id == user_id))
    return result.scalar_one_or_none()


async def get_team_for_user(session: AsyncSession, user_id: str) -> TeamDB | None:
    """The team the user currently belongs to, if any."""
    result = await session.execute(
        select(TeamDB).join(TeamMemberDB).where(TeamMemberDB.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def ensure_not_in_team(session: AsyncSession, user_id: str) -> None:
    """Raise ALREADY_IN_TEAM if the user already belongs to a team."""
    if await get_membership(session, user_id) is not None:
        raise StateError(
            ErrorCode.ALREADY_IN_TEAM,
            "You are already a member of a team. Leave your current team first.",
        )


async def ensure_name_available(
    session: AsyncSession, name: str, exclude_team_id: UUID | None = None
) -> None:
    """Raise DUPLICATE_TEAM_NAME if another team already uses this name (any case)."""
    query = select(TeamDB.id).where(TeamDB.name_key == name_key(name))
    if exclude_team_id is not None:
        query = query.where(TeamDB.id != exclude_team_id)
    result = await session.execute(query)
    if result.first() is not None:
        raise ConflictError(
            ErrorCode.DUPLICATE_TEAM_NAME,
            "Team name already exists. Please choose a different name.",
            details={"name": name},
        )


def team_search_query(search: str | None = None, exclude_team_id: UUID | None = None) -> Select:
    """Teams matching a free-text search on name or description, newest first."""
    query = select(TeamDB)
    if exclude_team_id is not None:
        query = query.where(TeamDB.id != exclude_team_id)
    if search and search.strip():
        term = search.strip()
        query = query.where(
            or_(
                TeamDB.name.icontains(term, autoescape=True),
                TeamDB.description.icontains(term, autoescape=True),
            )
        )
    return query.order_by(TeamDB.created_at.desc(), TeamDB.id)

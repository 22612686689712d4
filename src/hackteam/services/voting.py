"""Voting ledger: one rating per (voter, team) and the per-team aggregate.

The aggregate (rating, total_votes) cached on the team row is always rebuilt
from the full vote set inside the same transaction as the vote write. Writes
lock the team row, which also serializes them against membership changes, so
the "voter is not a member at time of write" check cannot race a join.
"""

import logging
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.api.errors import ConflictError, ErrorCode, ForbiddenError, NotFoundError, StateError
from hackteam.config import settings
from hackteam.db.models import TeamDB, VoteDB
from hackteam.models.vote import TeamAggregate, VoteCreate, VoteUpdate, VotingProgress
from hackteam.services.audit import AuditAction, log_vote_event
from hackteam.services.concurrency import flush_or_conflict, lock_team
from hackteam.services.metrics import CONFLICTS, VOTE_OPERATIONS
from hackteam.services.teams import find_member, get_membership, get_team, team_search_query, touch

logger = logging.getLogger(__name__)


def mean_rating(total: int, count: int) -> float | None:
    """Mean of count ratings summing to total, rounded half-up to one decimal."""
    if count == 0:
        return None
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def aggregate_of(team: TeamDB) -> TeamAggregate:
    return TeamAggregate(team_id=team.id, rating=team.rating, total_votes=team.total_votes)


async def recompute_aggregate(session: AsyncSession, team: TeamDB) -> TeamAggregate:
    """Rebuild the team's rating and total_votes from its votes."""
    await session.flush()
    result = await session.execute(
        select(func.count(VoteDB.id), func.coalesce(func.sum(VoteDB.rating), 0)).where(
            VoteDB.team_id == team.id
        )
    )
    count, total = result.one()
    team.total_votes = int(count)
    team.rating = mean_rating(int(total), int(count))
    touch(team)
    await flush_or_conflict(session)
    return aggregate_of(team)


def _ensure_voting_open() -> None:
    if not settings.voting_enabled:
        raise ForbiddenError("Voting is currently closed", code=ErrorCode.VOTING_CLOSED)


async def _ensure_can_vote_for(session: AsyncSession, team: TeamDB, voter_id: str) -> None:
    """Voters may not rate a team they currently belong to."""
    if find_member(team, voter_id) is not None:
        raise StateError(ErrorCode.SELF_VOTE, "You cannot vote for your own team")
    await ensure_voter_in_team(session, voter_id)


async def ensure_voter_in_team(session: AsyncSession, voter_id: str) -> None:
    """With voting_requires_team on, teamless users can neither vote nor list ballots."""
    if settings.voting_requires_team and await get_membership(session, voter_id) is None:
        raise StateError(
            ErrorCode.NOT_IN_TEAM, "You must be part of a team to vote for other teams"
        )


async def find_vote(session: AsyncSession, voter_id: str, team_id: UUID) -> VoteDB | None:
    result = await session.execute(
        select(VoteDB).where(VoteDB.voter_id == voter_id).where(VoteDB.team_id == team_id)
    )
    return result.scalar_one_or_none()


async def _get_vote(session: AsyncSession, voter_id: str, team_id: UUID) -> VoteDB:
    vote = await find_vote(session, voter_id, team_id)
    if not vote:
        raise NotFoundError(ErrorCode.VOTE_NOT_FOUND, "Vote not found")
    return vote


async def submit_vote(
    session: AsyncSession, voter_id: str, team_id: UUID, data: VoteCreate
) -> tuple[VoteDB, TeamAggregate]:
    """Record a new vote and refresh the team's aggregate.

    Raises:
        ForbiddenError: VOTING_CLOSED
        NotFoundError: TEAM_NOT_FOUND
        StateError: SELF_VOTE or NOT_IN_TEAM
        ConflictError: DUPLICATE_VOTE
    """
    _ensure_voting_open()
    team = await lock_team(session, team_id)
    await _ensure_can_vote_for(session, team, voter_id)

    if await find_vote(session, voter_id, team_id) is not None:
        CONFLICTS.labels(ErrorCode.DUPLICATE_VOTE).inc()
        raise ConflictError(ErrorCode.DUPLICATE_VOTE, "You have already voted for this team")

    now = datetime.now(UTC)
    vote = VoteDB(
        voter_id=voter_id,
        team_id=team_id,
        rating=data.rating,
        comment=data.comment,
        created_at=now,
        updated_at=now,
    )
    session.add(vote)
    await flush_or_conflict(session)
    aggregate = await recompute_aggregate(session, team)

    await log_vote_event(
        session, vote.id, AuditAction.VOTE_SUBMITTED, voter_id, team_id, rating=vote.rating
    )
    VOTE_OPERATIONS.labels("submit").inc()
    logger.info("User %s voted %d for team %s", voter_id, vote.rating, team_id)
    return vote, aggregate


async def update_vote(
    session: AsyncSession, voter_id: str, team_id: UUID, data: VoteUpdate
) -> tuple[VoteDB, TeamAggregate]:
    """Replace the rating and comment of the voter's existing vote.

    Raises:
        ForbiddenError: VOTING_CLOSED
        NotFoundError: VOTE_NOT_FOUND
        StateError: SELF_VOTE if the voter has since joined the team
    """
    _ensure_voting_open()
    await _get_vote(session, voter_id, team_id)
    team = await lock_team(session, team_id)
    # Re-read under the team lock; a concurrent delete may have won
    vote = await _get_vote(session, voter_id, team_id)
    await _ensure_can_vote_for(session, team, voter_id)

    vote.rating = data.rating
    vote.comment = data.comment
    vote.updated_at = datetime.now(UTC)
    await flush_or_conflict(session)
    aggregate = await recompute_aggregate(session, team)

    await log_vote_event(
        session, vote.id, AuditAction.VOTE_UPDATED, voter_id, team_id, rating=vote.rating
    )
    VOTE_OPERATIONS.labels("update").inc()
    logger.info("User %s changed vote for team %s to %d", voter_id, team_id, vote.rating)
    return vote, aggregate


async def delete_vote(session: AsyncSession, voter_id: str, team_id: UUID) -> TeamAggregate:
    """Withdraw the voter's vote; the rating becomes None when no votes remain.

    Raises:
        ForbiddenError: VOTING_CLOSED
        NotFoundError: VOTE_NOT_FOUND
    """
    _ensure_voting_open()
    await _get_vote(session, voter_id, team_id)
    team = await lock_team(session, team_id)
    vote = await _get_vote(session, voter_id, team_id)
    vote_id = vote.id

    await session.delete(vote)
    await flush_or_conflict(session)
    aggregate = await recompute_aggregate(session, team)

    await log_vote_event(session, vote_id, AuditAction.VOTE_DELETED, voter_id, team_id)
    VOTE_OPERATIONS.labels("delete").inc()
    logger.info("User %s withdrew vote for team %s", voter_id, team_id)
    return aggregate


async def check_user_vote(session: AsyncSession, voter_id: str, team_id: UUID) -> VoteDB | None:
    """The voter's vote for a team, if any. Raises TEAM_NOT_FOUND for unknown teams."""
    await get_team(session, team_id)
    return await find_vote(session, voter_id, team_id)


async def own_team_id(session: AsyncSession, user_id: str) -> UUID | None:
    membership = await get_membership(session, user_id)
    return membership.team_id if membership else None


async def voted_team_ids(session: AsyncSession, voter_id: str) -> set[UUID]:
    result = await session.execute(select(VoteDB.team_id).where(VoteDB.voter_id == voter_id))
    return set(result.scalars().all())


async def teams_with_ratings_query(
    session: AsyncSession, voter_id: str, search: str | None = None
) -> Select:
    """Every team except the voter's own, newest first, optionally searched."""
    await ensure_voter_in_team(session, voter_id)
    return team_search_query(search, exclude_team_id=await own_team_id(session, voter_id))


async def voting_progress(session: AsyncSession, voter_id: str) -> VotingProgress:
    """Computed on demand from current teams and votes; nothing is stored."""
    own_id = await own_team_id(session, voter_id)

    eligible_query = select(func.count(TeamDB.id))
    voted_query = (
        select(func.count(VoteDB.id))
        .join(TeamDB, TeamDB.id == VoteDB.team_id)
        .where(VoteDB.voter_id == voter_id)
    )
    if own_id is not None:
        eligible_query = eligible_query.where(TeamDB.id != own_id)
        voted_query = voted_query.where(VoteDB.team_id != own_id)

    eligible = await session.scalar(eligible_query) or 0
    voted = await session.scalar(voted_query) or 0
    return VotingProgress(
        own_team_id=own_id,
        eligible_teams=eligible,
        voted=voted,
        remaining=max(eligible - voted, 0),
        completed=eligible > 0 and voted >= eligible,
    )


async def voting_history(session: AsyncSession, voter_id: str) -> list[VoteDB]:
    """The voter's votes, most recently changed first."""
    result = await session.execute(
        select(VoteDB)
        .where(VoteDB.voter_id == voter_id)
        .order_by(VoteDB.updated_at.desc(), VoteDB.id)
    )
    return list(result.scalars().all())


async def list_team_votes(session: AsyncSession, team_id: UUID) -> tuple[TeamDB, list[VoteDB]]:
    """A team and its votes, newest first."""
    team = await get_team(session, team_id)
    result = await session.execute(
        select(VoteDB)
        .where(VoteDB.team_id == team_id)
        .order_by(VoteDB.created_at.desc(), VoteDB.id)
    )
    return team, list(result.scalars().all())


async def all_votes_by_team(session: AsyncSession) -> list[tuple[TeamDB, list[VoteDB]]]:
    """Every team with its votes, best rated first (unrated teams last)."""
    teams_result = await session.execute(select(TeamDB))
    teams = list(teams_result.scalars().all())
    votes_result = await session.execute(
        select(VoteDB).order_by(VoteDB.created_at.desc(), VoteDB.id)
    )
    by_team: dict[UUID, list[VoteDB]] = {team.id: [] for team in teams}
    for vote in votes_result.scalars().all():
        by_team.setdefault(vote.team_id, []).append(vote)

    teams.sort(key=lambda t: (t.rating is None, -(t.rating or 0), -t.total_votes, t.name_key))
    return [(team, by_team[team.id]) for team in teams]

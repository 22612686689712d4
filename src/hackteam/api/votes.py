"""Peer voting API endpoints."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.api.auth import Auth, RequireAdmin
from hackteam.api.pagination import (
    PaginationParams,
    count_rows,
    page_envelope,
    pagination_params,
)
from hackteam.api.rate_limit import limit_admin, limit_read, limit_write
from hackteam.db import TeamDB, VoteDB, get_session
from hackteam.models import (
    TeamAggregate,
    TeamVotes,
    TeamWithRating,
    Vote,
    VoteCheck,
    VoteCreate,
    VoteResult,
    VoteUpdate,
    VotingProgress,
)
from hackteam.services import voting

router = APIRouter()


def _team_votes(team: TeamDB, votes: list[VoteDB]) -> TeamVotes:
    return TeamVotes(
        team_id=team.id,
        team_name=team.name,
        votes=[Vote.model_validate(v) for v in votes],
        aggregate=voting.aggregate_of(team),
    )


@router.get("/teams-with-ratings")
@limit_read
async def list_teams_with_ratings(
    request: Request,
    auth: Auth,
    search: str | None = Query(None, description="Match team name or description"),
    params: PaginationParams = Depends(pagination_params),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Teams the caller may vote for, each with its current rating.

    The caller's own team is left out; has_voted marks teams already rated.
    """
    query = await voting.teams_with_ratings_query(session, auth.user_id, search)
    total = await count_rows(session, query)
    result = await session.execute(query.limit(params.page_size).offset(params.offset))
    voted = await voting.voted_team_ids(session, auth.user_id)

    results = []
    for team in result.scalars().all():
        item = TeamWithRating.model_validate(team)
        item.has_voted = team.id in voted
        results.append(item.model_dump(mode="json"))
    return page_envelope(results, total, params)


@router.post("/teams/{team_id}", response_model=VoteResult, status_code=201)
@limit_write
async def submit_vote(
    request: Request,
    team_id: UUID,
    vote: VoteCreate,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> VoteResult:
    """Rate a team you are not a member of. One vote per team."""
    db_vote, aggregate = await voting.submit_vote(session, auth.user_id, team_id, vote)
    return VoteResult(vote=Vote.model_validate(db_vote), aggregate=aggregate)


@router.put("/teams/{team_id}", response_model=VoteResult)
@limit_write
async def update_vote(
    request: Request,
    team_id: UUID,
    vote: VoteUpdate,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> VoteResult:
    """Change the rating and comment of your vote for a team."""
    db_vote, aggregate = await voting.update_vote(session, auth.user_id, team_id, vote)
    return VoteResult(vote=Vote.model_validate(db_vote), aggregate=aggregate)


@router.delete("/teams/{team_id}", response_model=TeamAggregate)
@limit_write
async def delete_vote(
    request: Request,
    team_id: UUID,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamAggregate:
    """Withdraw your vote for a team. Returns the team's recomputed aggregate."""
    return await voting.delete_vote(session, auth.user_id, team_id)


@router.get("/teams/{team_id}/check", response_model=VoteCheck)
@limit_read
async def check_vote(
    request: Request,
    team_id: UUID,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> VoteCheck:
    """Whether you have already voted for a team, and the vote if so."""
    vote = await voting.check_user_vote(session, auth.user_id, team_id)
    return VoteCheck(has_voted=vote is not None, vote=Vote.model_validate(vote) if vote else None)


@router.get("/teams/{team_id}/votes", response_model=TeamVotes)
@limit_read
async def list_team_votes(
    request: Request,
    team_id: UUID,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamVotes:
    """All votes cast for a team, newest first, with its aggregate."""
    team, votes = await voting.list_team_votes(session, team_id)
    return _team_votes(team, votes)


@router.get("/mine", response_model=list[Vote])
@limit_read
async def voting_history(
    request: Request,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> list[VoteDB]:
    """Votes you have cast."""
    return await voting.voting_history(session, auth.user_id)


@router.get("/progress", response_model=VotingProgress)
@limit_read
async def voting_progress(
    request: Request,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> VotingProgress:
    """How many eligible teams you have voted for and whether you are done."""
    return await voting.voting_progress(session, auth.user_id)


@router.get("/admin/by-team", response_model=list[TeamVotes])
@limit_admin
async def all_votes_by_team(
    request: Request,
    auth: Auth,
    _: None = RequireAdmin,
    session: AsyncSession = Depends(get_session),
) -> list[TeamVotes]:
    """Every team with all of its votes, best rated first.

    Requires an organizer role.
    """
    return [_team_votes(team, votes) for team, votes in await voting.all_votes_by_team(session)]

"""Team formation API endpoints."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.api.auth import Auth
from hackteam.api.errors import ErrorCode, NotFoundError
from hackteam.api.pagination import PaginationParams, paginate, pagination_params
from hackteam.api.rate_limit import limit_read, limit_write
from hackteam.db import TeamDB, get_session
from hackteam.models import (
    LeaveTeamRequest,
    LeaveTeamResult,
    Team,
    TeamCreate,
    TeamUpdate,
    TransferLeadershipRequest,
)
from hackteam.models.enums import LeaveOutcome
from hackteam.services import membership
from hackteam.services.teams import get_team as load_team
from hackteam.services.teams import get_team_for_user, team_search_query

router = APIRouter()

LEAVE_MESSAGES = {
    LeaveOutcome.LEFT: "You have left the team",
    LeaveOutcome.LEADERSHIP_TRANSFERRED: "You have left the team and leadership was transferred",
    LeaveOutcome.DISBANDED: "You were the last member; the team has been disbanded",
}


@router.post("", response_model=Team, status_code=201)
@limit_write
async def create_team(
    request: Request,
    team: TeamCreate,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamDB:
    """Create a team and become its leader.

    Takes one of the chosen problem statement's selection slots.
    """
    return await membership.create_team(session, auth.user_id, team)


@router.get("")
@limit_read
async def list_teams(
    request: Request,
    auth: Auth,
    search: str | None = Query(None, description="Match team name or description"),
    params: PaginationParams = Depends(pagination_params),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """List teams, newest first."""
    return await paginate(session, team_search_query(search), params, response_model=Team)


@router.get("/mine", response_model=Team)
@limit_read
async def get_my_team(
    request: Request,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamDB:
    """Get the caller's current team."""
    team = await get_team_for_user(session, auth.user_id)
    if not team:
        raise NotFoundError(ErrorCode.TEAM_NOT_FOUND, "You are not a member of any team")
    return team


@router.get("/{team_id}", response_model=Team)
@limit_read
async def get_team(
    request: Request,
    team_id: UUID,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamDB:
    """Get a team by ID."""
    return await load_team(session, team_id)


@router.patch("/{team_id}", response_model=Team)
@limit_write
async def update_team(
    request: Request,
    team_id: UUID,
    update: TeamUpdate,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamDB:
    """Rename a team or change its description.

    Leader only. The problem statement cannot be changed.
    """
    return await membership.update_team(session, auth.user_id, team_id, update)


@router.delete("/{team_id}", status_code=204)
@limit_write
async def delete_team(
    request: Request,
    team_id: UUID,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> Response:
    """Delete a team, its memberships and the votes it received.

    Leader only. Frees the team's problem statement slot.
    """
    await membership.delete_team(session, auth.user_id, team_id)
    return Response(status_code=204)


@router.post("/{team_id}/join", response_model=Team)
@limit_write
async def join_team(
    request: Request,
    team_id: UUID,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamDB:
    """Join a team as a regular member."""
    return await membership.join_team(session, auth.user_id, team_id)


@router.post("/{team_id}/leave", response_model=LeaveTeamResult)
@limit_write
async def leave_team(
    request: Request,
    team_id: UUID,
    auth: Auth,
    body: LeaveTeamRequest | None = Body(None),
    session: AsyncSession = Depends(get_session),
) -> LeaveTeamResult:
    """Leave a team.

    A leader leaving a team with other members hands leadership to
    transfer_to_user_id, or to the longest-standing member if omitted.
    The last member leaving disbands the team.
    """
    transfer_to = body.transfer_to_user_id if body else None
    result = await membership.leave_team(session, auth.user_id, team_id, transfer_to)
    return LeaveTeamResult(
        outcome=result.outcome,
        message=LEAVE_MESSAGES[result.outcome],
        team=Team.model_validate(result.team) if result.team else None,
        new_leader_id=result.new_leader_id,
    )


@router.post("/{team_id}/transfer-leadership", response_model=Team)
@limit_write
async def transfer_leadership(
    request: Request,
    team_id: UUID,
    transfer: TransferLeadershipRequest,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamDB:
    """Make another member the leader. Leader only."""
    return await membership.transfer_leadership(
        session, auth.user_id, team_id, transfer.new_leader_id
    )


@router.delete("/{team_id}/members/{member_id}", response_model=Team)
@limit_write
async def remove_member(
    request: Request,
    team_id: UUID,
    member_id: str,
    auth: Auth,
    session: AsyncSession = Depends(get_session),
) -> TeamDB:
    """Remove another member from the team. Leader only."""
    return await membership.remove_member(session, auth.user_id, team_id, member_id)

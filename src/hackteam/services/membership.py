"""Membership lifecycle: create, join, leave, remove, delete, update, transfer.

Every operation runs inside the request transaction. Preconditions are checked
before any write, and the session dependency rolls back on any exception, so a
failure after a slot reservation (or any other partial write) leaves nothing
behind.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.api.errors import ConflictError, ErrorCode, NotFoundError, StateError
from hackteam.config import settings
from hackteam.db.models import TeamDB, TeamMemberDB, VoteDB
from hackteam.models.enums import LeaveOutcome, MemberRole
from hackteam.models.team import TeamCreate, TeamUpdate
from hackteam.services import capacity
from hackteam.services.audit import AuditAction, log_team_event
from hackteam.services.concurrency import flush_or_conflict, lock_team
from hackteam.services.metrics import CONFLICTS, TEAM_OPERATIONS
from hackteam.services.teams import (
    earliest_joined,
    ensure_name_available,
    ensure_not_in_team,
    find_member,
    get_leader,
    name_key,
    next_join_order,
    require_leader,
    touch,
    verify_invariants,
)

logger = logging.getLogger(__name__)


@dataclass
class LeaveResult:
    """What happened when a member left."""

    outcome: LeaveOutcome
    team: TeamDB | None = None
    new_leader_id: str | None = None


async def create_team(session: AsyncSession, requester_id: str, data: TeamCreate) -> TeamDB:
    """Create a team led by the requester on a problem statement with a free slot.

    Raises:
        StateError: ALREADY_IN_TEAM
        ConflictError: DUPLICATE_TEAM_NAME or PROBLEM_STATEMENT_FULL
        NotFoundError: PROBLEM_STATEMENT_NOT_FOUND
    """
    await ensure_not_in_team(session, requester_id)
    await ensure_name_available(session, data.name)
    await capacity.reserve_slot(session, data.problem_statement_id, requester_id)

    now = datetime.now(UTC)
    team = TeamDB(
        id=uuid4(),
        name=data.name,
        name_key=name_key(data.name),
        description=data.description,
        problem_statement_id=data.problem_statement_id,
        rating=None,
        total_votes=0,
        created_at=now,
        updated_at=now,
        members=[
            TeamMemberDB(
                user_id=requester_id,
                role=MemberRole.LEADER,
                joined_at=now,
                join_order=0,
            )
        ],
    )
    verify_invariants(team)
    session.add(team)
    await flush_or_conflict(session)

    await log_team_event(
        session,
        team.id,
        AuditAction.TEAM_CREATED,
        requester_id,
        name=team.name,
        problem_statement_id=team.problem_statement_id,
    )
    TEAM_OPERATIONS.labels("create").inc()
    logger.info("Team %s (%s) created by %s", team.id, team.name, requester_id)
    return team


async def join_team(session: AsyncSession, requester_id: str, team_id: UUID) -> TeamDB:
    """Add the requester to a team as a regular member.

    Raises:
        NotFoundError: TEAM_NOT_FOUND
        StateError: ALREADY_IN_TEAM
        ConflictError: TEAM_FULL
    """
    team = await lock_team(session, team_id)
    await ensure_not_in_team(session, requester_id)

    if len(team.members) >= settings.team_max_members:
        CONFLICTS.labels(ErrorCode.TEAM_FULL).inc()
        raise ConflictError(
            ErrorCode.TEAM_FULL,
            f"Team is full (maximum {settings.team_max_members} members)",
            details={"team_id": str(team.id), "max_members": settings.team_max_members},
        )

    team.members.append(
        TeamMemberDB(
            user_id=requester_id,
            role=MemberRole.MEMBER,
            joined_at=datetime.now(UTC),
            join_order=next_join_order(team),
        )
    )
    verify_invariants(team)
    touch(team)
    await flush_or_conflict(session)

    await log_team_event(session, team.id, AuditAction.TEAM_JOINED, requester_id)
    TEAM_OPERATIONS.labels("join").inc()
    logger.info("User %s joined team %s", requester_id, team.id)
    return team


async def leave_team(
    session: AsyncSession,
    requester_id: str,
    team_id: UUID,
    transfer_to_user_id: str | None = None,
) -> LeaveResult:
    """Remove the requester from a team.

    A regular member simply leaves. A leader with teammates hands leadership to
    transfer_to_user_id, or to the earliest-joined remaining member when no
    target is given. A leader who is the only member disbands the team, which
    releases its problem statement slot.

    Raises:
        NotFoundError: TEAM_NOT_FOUND
        StateError: NOT_A_TEAM_MEMBER or INVALID_TRANSFER_TARGET
    """
    team = await lock_team(session, team_id)
    member = find_member(team, requester_id)
    if member is None:
        raise StateError(ErrorCode.NOT_A_TEAM_MEMBER, "You are not a member of this team")

    if member.role != MemberRole.LEADER:
        team.members.remove(member)
        verify_invariants(team)
        touch(team)
        await flush_or_conflict(session)
        await log_team_event(session, team.id, AuditAction.TEAM_LEFT, requester_id)
        TEAM_OPERATIONS.labels("leave").inc()
        logger.info("User %s left team %s", requester_id, team.id)
        return LeaveResult(outcome=LeaveOutcome.LEFT, team=team)

    if len(team.members) > 1 and transfer_to_user_id is not None:
        successor = _transfer_target(team, requester_id, transfer_to_user_id)
    else:
        successor = earliest_joined(team, exclude_user_id=requester_id)

    if successor is None:
        await _destroy_team(session, team)
        await log_team_event(
            session,
            team_id,
            AuditAction.TEAM_DISBANDED,
            requester_id,
            problem_statement_id=team.problem_statement_id,
        )
        TEAM_OPERATIONS.labels("disband").inc()
        logger.info("Team %s disbanded by its last member %s", team_id, requester_id)
        return LeaveResult(outcome=LeaveOutcome.DISBANDED)

    successor.role = MemberRole.LEADER
    team.members.remove(member)
    verify_invariants(team)
    touch(team)
    await flush_or_conflict(session)

    await log_team_event(
        session,
        team.id,
        AuditAction.TEAM_LEADERSHIP_TRANSFERRED,
        requester_id,
        new_leader_id=successor.user_id,
        reason="leader_left",
    )
    TEAM_OPERATIONS.labels("leave").inc()
    logger.info(
        "Leader %s left team %s; leadership passed to %s",
        requester_id,
        team.id,
        successor.user_id,
    )
    return LeaveResult(
        outcome=LeaveOutcome.LEADERSHIP_TRANSFERRED,
        team=team,
        new_leader_id=successor.user_id,
    )


async def remove_member(
    session: AsyncSession, requester_id: str, team_id: UUID, member_id: str
) -> TeamDB:
    """Leader removes another member from the team.

    Raises:
        ForbiddenError: NOT_TEAM_LEADER
        StateError: CANNOT_REMOVE_SELF
        NotFoundError: TEAM_NOT_FOUND or MEMBER_NOT_FOUND
    """
    team = await lock_team(session, team_id)
    require_leader(team, requester_id, "remove members")
    if member_id == requester_id:
        raise StateError(
            ErrorCode.CANNOT_REMOVE_SELF,
            "You cannot remove yourself. Leave the team instead.",
        )

    member = find_member(team, member_id)
    if member is None:
        raise NotFoundError(ErrorCode.MEMBER_NOT_FOUND, "Member not found in this team")

    team.members.remove(member)
    verify_invariants(team)
    touch(team)
    await flush_or_conflict(session)

    await log_team_event(
        session, team.id, AuditAction.TEAM_MEMBER_REMOVED, requester_id, member_id=member_id
    )
    TEAM_OPERATIONS.labels("remove_member").inc()
    logger.info("User %s removed %s from team %s", requester_id, member_id, team.id)
    return team


async def delete_team(session: AsyncSession, requester_id: str, team_id: UUID) -> None:
    """Leader deletes the team, freeing its problem statement slot.

    Raises:
        ForbiddenError: NOT_TEAM_LEADER
        NotFoundError: TEAM_NOT_FOUND
    """
    team = await lock_team(session, team_id)
    require_leader(team, requester_id, "delete the team")

    problem_statement_id = team.problem_statement_id
    member_count = len(team.members)
    await _destroy_team(session, team)

    await log_team_event(
        session,
        team_id,
        AuditAction.TEAM_DELETED,
        requester_id,
        problem_statement_id=problem_statement_id,
        member_count=member_count,
    )
    TEAM_OPERATIONS.labels("delete").inc()
    logger.info("Team %s deleted by %s", team_id, requester_id)


async def update_team(
    session: AsyncSession, requester_id: str, team_id: UUID, data: TeamUpdate
) -> TeamDB:
    """Leader renames the team or edits its description.

    Raises:
        ForbiddenError: NOT_TEAM_LEADER
        ConflictError: DUPLICATE_TEAM_NAME
    """
    team = await lock_team(session, team_id)
    require_leader(team, requester_id, "update the team")

    changes: dict[str, str | None] = {}
    if "name" in data.model_fields_set and data.name is not None and data.name != team.name:
        await ensure_name_available(session, data.name, exclude_team_id=team.id)
        team.name = data.name
        team.name_key = name_key(data.name)
        changes["name"] = data.name
    if "description" in data.model_fields_set and data.description != team.description:
        team.description = data.description
        changes["description"] = data.description

    if not changes:
        return team

    touch(team)
    await flush_or_conflict(session)
    await log_team_event(session, team.id, AuditAction.TEAM_UPDATED, requester_id, **changes)
    TEAM_OPERATIONS.labels("update").inc()
    logger.info("Team %s updated by %s: %s", team.id, requester_id, sorted(changes))
    return team


async def transfer_leadership(
    session: AsyncSession, requester_id: str, team_id: UUID, new_leader_id: str
) -> TeamDB:
    """Hand leadership to another member; the old leader stays on as a member.

    Raises:
        ForbiddenError: NOT_TEAM_LEADER
        StateError: INVALID_TRANSFER_TARGET
    """
    team = await lock_team(session, team_id)
    leader = require_leader(team, requester_id, "transfer leadership")
    successor = _transfer_target(team, requester_id, new_leader_id)

    leader.role = MemberRole.MEMBER
    successor.role = MemberRole.LEADER
    verify_invariants(team)
    touch(team)
    await flush_or_conflict(session)

    await log_team_event(
        session,
        team.id,
        AuditAction.TEAM_LEADERSHIP_TRANSFERRED,
        requester_id,
        new_leader_id=new_leader_id,
        reason="transfer",
    )
    TEAM_OPERATIONS.labels("transfer_leadership").inc()
    logger.info("Leadership of team %s moved from %s to %s", team.id, requester_id, new_leader_id)
    return team


def _transfer_target(team: TeamDB, requester_id: str, target_id: str) -> TeamMemberDB:
    """Resolve a leadership transfer target: a current, non-leader member."""
    target = find_member(team, target_id)
    if target is None or target_id == requester_id or target.role == MemberRole.LEADER:
        raise StateError(
            ErrorCode.INVALID_TRANSFER_TARGET,
            "Leadership can only be transferred to another member of this team",
            details={"transfer_to_user_id": target_id},
        )
    return target


async def _destroy_team(session: AsyncSession, team: TeamDB) -> None:
    """Delete a locked team with its members and votes, and release its slot."""
    # Sanity check: a team being destroyed still had a leader
    get_leader(team)
    await capacity.release_slot(session, team.problem_statement_id)
    await session.execute(delete(VoteDB).where(VoteDB.team_id == team.id))
    await session.delete(team)
    await flush_or_conflict(session)

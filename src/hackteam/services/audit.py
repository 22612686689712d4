"""Audit logging service.

Provides append-only audit trail for all team formation and voting events.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.db import AuditEventDB


class AuditAction(StrEnum):
    """Types of auditable actions."""

    # Team actions
    TEAM_CREATED = "team.created"
    TEAM_UPDATED = "team.updated"
    TEAM_JOINED = "team.joined"
    TEAM_LEFT = "team.left"
    TEAM_LEADERSHIP_TRANSFERRED = "team.leadership_transferred"
    TEAM_MEMBER_REMOVED = "team.member_removed"
    TEAM_DISBANDED = "team.disbanded"
    TEAM_DELETED = "team.deleted"

    # Problem statement actions
    PROBLEM_STATEMENT_CREATED = "problem_statement.created"
    PROBLEM_STATEMENT_CUSTOM_CREATED = "problem_statement.custom_created"

    # Vote actions
    VOTE_SUBMITTED = "vote.submitted"
    VOTE_UPDATED = "vote.updated"
    VOTE_DELETED = "vote.deleted"

    # Maintenance
    COUNTERS_RECONCILED = "counters.reconciled"


async def log_event(
    session: AsyncSession,
    entity_type: str,
    entity_id: UUID,
    action: AuditAction,
    actor_id: str | None = None,
    payload: dict[str, Any] | None = None,
) -> AuditEventDB:
    """Log an audit event.

    Args:
        session: Database session
        entity_type: Type of entity (e.g., "team", "vote", "problem_statement")
        entity_id: ID of the affected entity
        action: The action that was performed
        actor_id: ID of the user that performed the action (optional)
        payload: Additional data about the event (optional)

    Returns:
        The created audit event
    """
    event = AuditEventDB(
        entity_type=entity_type,
        entity_id=entity_id,
        action=str(action),
        actor_id=actor_id,
        payload=payload or {},
        occurred_at=datetime.now(UTC),
    )
    session.add(event)
    await session.flush()
    return event


async def log_team_event(
    session: AsyncSession,
    team_id: UUID,
    action: AuditAction,
    actor_id: str,
    **payload: Any,
) -> AuditEventDB:
    """Log a team lifecycle event."""
    return await log_event(
        session=session,
        entity_type="team",
        entity_id=team_id,
        action=action,
        actor_id=actor_id,
        payload={k: str(v) if isinstance(v, UUID) else v for k, v in payload.items()},
    )


async def log_vote_event(
    session: AsyncSession,
    vote_id: UUID,
    action: AuditAction,
    voter_id: str,
    team_id: UUID,
    rating: int | None = None,
) -> AuditEventDB:
    """Log a vote ledger event."""
    payload: dict[str, Any] = {"team_id": str(team_id)}
    if rating is not None:
        payload["rating"] = rating
    return await log_event(
        session=session,
        entity_type="vote",
        entity_id=vote_id,
        action=action,
        actor_id=voter_id,
        payload=payload,
    )

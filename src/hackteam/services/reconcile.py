"""Rebuild derived counters from source rows.

selection_count on problem statements and rating/total_votes on teams are the
only derived values that are stored. Both can always be recomputed: the former
from the teams referencing each statement, the latter from the vote set.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.config import settings
from hackteam.db.models import ProblemStatementDB, TeamDB, VoteDB
from hackteam.services.audit import AuditAction, log_event
from hackteam.services.voting import mean_rating

logger = logging.getLogger(__name__)


@dataclass
class CounterDrift:
    """A stored counter that disagrees with the rows it summarizes."""

    entity_type: str
    entity_id: UUID
    field: str
    stored: Any
    actual: Any


async def reconcile_counters(
    session: AsyncSession, dry_run: bool = True, actor_id: str | None = None
) -> list[CounterDrift]:
    """Compare every stored counter with its source rows and optionally repair it.

    Args:
        session: Database session
        dry_run: Report drift without writing anything
        actor_id: Admin user that triggered the run, for the audit trail

    Returns:
        All drifted counters found (already fixed unless dry_run)
    """
    drifts: list[CounterDrift] = []

    team_counts_result = await session.execute(
        select(TeamDB.problem_statement_id, func.count(TeamDB.id)).group_by(
            TeamDB.problem_statement_id
        )
    )
    team_counts: dict[UUID, int] = dict(team_counts_result.all())

    problems_result = await session.execute(
        select(ProblemStatementDB).execution_options(populate_existing=True)
    )
    for problem in problems_result.scalars().all():
        actual = team_counts.get(problem.id, 0)
        if actual > settings.problem_statement_selection_cap:
            logger.warning(
                "Problem statement %s is referenced by %d teams, above the cap of %d",
                problem.id,
                actual,
                settings.problem_statement_selection_cap,
            )
        if problem.selection_count != actual:
            drifts.append(
                CounterDrift(
                    "problem_statement",
                    problem.id,
                    "selection_count",
                    problem.selection_count,
                    actual,
                )
            )
            if not dry_run:
                problem.selection_count = actual

    vote_stats_result = await session.execute(
        select(VoteDB.team_id, func.count(VoteDB.id), func.sum(VoteDB.rating)).group_by(
            VoteDB.team_id
        )
    )
    vote_stats = {team_id: (int(count), int(total)) for team_id, count, total in vote_stats_result}

    teams_result = await session.execute(
        select(TeamDB).execution_options(populate_existing=True)
    )
    for team in teams_result.scalars().all():
        count, total = vote_stats.get(team.id, (0, 0))
        rating = mean_rating(total, count)
        if team.total_votes != count:
            drifts.append(CounterDrift("team", team.id, "total_votes", team.total_votes, count))
        if team.rating != rating:
            drifts.append(CounterDrift("team", team.id, "rating", team.rating, rating))
        if not dry_run and (team.total_votes != count or team.rating != rating):
            team.total_votes = count
            team.rating = rating

    if drifts and not dry_run:
        await session.flush()
        run_id = uuid4()
        await log_event(
            session,
            entity_type="maintenance",
            entity_id=run_id,
            action=AuditAction.COUNTERS_RECONCILED,
            actor_id=actor_id,
            payload={
                "drifts": [
                    {**asdict(d), "entity_id": str(d.entity_id)} for d in drifts
                ],
            },
        )

    if drifts:
        logger.warning(
            "Counter reconciliation found %d drifted values (%s)",
            len(drifts),
            "dry run" if dry_run else "repaired",
        )
    else:
        logger.info("Counter reconciliation found no drift")
    return drifts

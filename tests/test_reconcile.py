"""Tests for counter reconciliation."""

from uuid import UUID

from httpx import AsyncClient
from sqlalchemy import select, update

from hackteam.db import AuditEventDB, ProblemStatementDB, TeamDB
from hackteam.services.reconcile import reconcile_counters


async def _corrupt(session_maker, problem_id: UUID, team_id: UUID) -> None:
    async with session_maker() as session:
        await session.execute(
            update(ProblemStatementDB)
            .where(ProblemStatementDB.id == problem_id)
            .values(selection_count=3)
        )
        await session.execute(
            update(TeamDB).where(TeamDB.id == team_id).values(rating=1.0, total_votes=7)
        )
        await session.commit()


class TestReconcileService:
    """Tests for reconcile_counters."""

    async def test_no_drift_on_consistent_data(self, client: AsyncClient, session, make_team):
        await make_team("Nova", "lead")
        assert await reconcile_counters(session, dry_run=True) == []

    async def test_dry_run_reports_without_fixing(
        self, client: AsyncClient, session, session_maker, as_user, make_problem, make_team
    ):
        problem_id = await make_problem()
        team = await make_team("Nova", "lead", problem_statement_id=problem_id)
        await client.post(
            f"/api/v1/votes/teams/{team['id']}",
            json={"rating": 4, "comment": "good"},
            headers=as_user("voter"),
        )
        await _corrupt(session_maker, problem_id, UUID(team["id"]))

        drifts = await reconcile_counters(session, dry_run=True)

        found = {(d.entity_type, d.field): (d.stored, d.actual) for d in drifts}
        assert found == {
            ("problem_statement", "selection_count"): (3, 1),
            ("team", "total_votes"): (7, 1),
            ("team", "rating"): (1.0, 4.0),
        }
        problem = await session.get(ProblemStatementDB, problem_id)
        assert problem is not None
        assert problem.selection_count == 3

    async def test_repair_fixes_and_audits(
        self, client: AsyncClient, session, session_maker, make_problem, make_team
    ):
        problem_id = await make_problem()
        team = await make_team("Nova", "lead", problem_statement_id=problem_id)
        await _corrupt(session_maker, problem_id, UUID(team["id"]))

        drifts = await reconcile_counters(session, dry_run=False, actor_id="organizer")
        await session.commit()

        assert len(drifts) == 3
        assert await reconcile_counters(session, dry_run=True) == []
        team_row = await session.get(TeamDB, UUID(team["id"]))
        assert team_row is not None
        assert team_row.rating is None
        assert team_row.total_votes == 0

        result = await session.execute(
            select(AuditEventDB).where(AuditEventDB.action == "counters.reconciled")
        )
        event = result.scalar_one()
        assert event.actor_id == "organizer"
        assert len(event.payload["drifts"]) == 3


class TestReconcileEndpoint:
    """Tests for POST /api/v1/admin/reconcile endpoint."""

    async def test_requires_admin(self, client: AsyncClient, as_user):
        resp = await client.post("/api/v1/admin/reconcile", headers=as_user("someone"))
        assert resp.status_code == 403

    async def test_reconcile_via_api(
        self, client: AsyncClient, session_maker, as_user, make_problem, make_team,
        selection_count,
    ):
        problem_id = await make_problem()
        team = await make_team("Nova", "lead", problem_statement_id=problem_id)
        await _corrupt(session_maker, problem_id, UUID(team["id"]))
        admin = as_user("organizer", "admin")

        resp = await client.post("/api/v1/admin/reconcile", headers=admin)
        assert resp.status_code == 200
        assert resp.json()["dry_run"] is True
        assert resp.json()["drift_count"] == 3
        assert resp.json()["repaired"] is False
        assert await selection_count(problem_id) == 3

        resp = await client.post(
            "/api/v1/admin/reconcile", params={"dry_run": "false"}, headers=admin
        )
        assert resp.json()["repaired"] is True
        assert await selection_count(problem_id) == 1

        resp = await client.post("/api/v1/admin/reconcile", headers=admin)
        assert resp.json()["drift_count"] == 0

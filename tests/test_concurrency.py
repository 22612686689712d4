"""Tests for concurrent writers and for unique-constraint races."""

import asyncio
from collections import Counter
from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock, patch
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hackteam.api.errors import ConflictError
from hackteam.db import Base, ProblemStatementDB, TeamDB, get_session
from hackteam.main import app
from hackteam.models.enums import ProblemStatementVisibility
from hackteam.services.concurrency import flush_or_conflict


@pytest.fixture
async def file_sessions(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Sessions on a file-backed database so requests use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'hackteam.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def file_client(
    file_sessions: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with file_sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def _user(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


async def _insert_problem(sessions: async_sessionmaker[AsyncSession]) -> UUID:
    async with sessions() as session:
        problem = ProblemStatementDB(
            title="Flood early warning",
            description="Flood early warning description",
            domain="Climate",
            selection_count=0,
            visibility=ProblemStatementVisibility.CATALOG,
        )
        session.add(problem)
        await session.commit()
        return problem.id


async def _create_team(client: AsyncClient, name: str, leader_id: str, problem_id: UUID):
    return await client.post(
        "/api/v1/teams",
        json={"name": name, "problem_statement_id": str(problem_id)},
        headers=_user(leader_id),
    )


async def _team_with_members(
    client: AsyncClient, problem_id: UUID, members: list[str]
) -> dict:
    resp = await _create_team(client, "Nova", "lead", problem_id)
    assert resp.status_code == 201, resp.text
    team = resp.json()
    for member_id in members:
        resp = await client.post(f"/api/v1/teams/{team['id']}/join", headers=_user(member_id))
        assert resp.status_code == 200, resp.text
        team = resp.json()
    return team


def _error_codes(responses) -> Counter:
    return Counter(r.json()["error"]["code"] for r in responses if r.status_code >= 400)


class TestConcurrentWriters:
    """Requests racing on the same problem statement or team."""

    async def test_last_slots_go_to_exactly_two_teams(
        self, file_client: AsyncClient, file_sessions
    ):
        problem_id = await _insert_problem(file_sessions)
        for i in range(2):
            resp = await _create_team(file_client, f"Early {i}", f"early{i}", problem_id)
            assert resp.status_code == 201

        responses = await asyncio.gather(
            *(_create_team(file_client, f"Racer {i}", f"racer{i}", problem_id) for i in range(6))
        )

        statuses = [r.status_code for r in responses]
        assert statuses.count(201) == 2
        assert statuses.count(409) == 4
        assert set(_error_codes(responses)) == {"PROBLEM_STATEMENT_FULL"}

        async with file_sessions() as session:
            problem = await session.get(ProblemStatementDB, problem_id)
            assert problem is not None
            team_count = await session.scalar(
                select(func.count(TeamDB.id)).where(TeamDB.problem_statement_id == problem_id)
            )
        assert problem.selection_count == team_count == 4

    async def test_concurrent_joins_never_overfill(
        self, file_client: AsyncClient, file_sessions
    ):
        problem_id = await _insert_problem(file_sessions)
        team = await _team_with_members(file_client, problem_id, ["m1", "m2", "m3", "m4"])

        responses = await asyncio.gather(
            *(
                file_client.post(f"/api/v1/teams/{team['id']}/join", headers=_user(f"late{i}"))
                for i in range(4)
            )
        )

        statuses = [r.status_code for r in responses]
        assert statuses.count(200) == 1
        assert statuses.count(409) == 3
        assert set(_error_codes(responses)) <= {"TEAM_FULL", "CONCURRENT_MODIFICATION"}

        resp = await file_client.get(f"/api/v1/teams/{team['id']}", headers=_user("lead"))
        assert len(resp.json()["members"]) == 6

    async def test_leader_and_member_leaving_together_keep_one_leader(
        self, file_client: AsyncClient, file_sessions
    ):
        problem_id = await _insert_problem(file_sessions)
        team = await _team_with_members(file_client, problem_id, ["m0", "m1", "m2", "m3", "m4"])
        leave_url = f"/api/v1/teams/{team['id']}/leave"

        responses = await asyncio.gather(
            file_client.post(leave_url, headers=_user("lead")),
            file_client.post(leave_url, headers=_user("m0")),
        )

        statuses = [r.status_code for r in responses]
        assert 200 in statuses
        assert set(statuses) <= {200, 409}
        assert set(_error_codes(responses)) <= {"CONCURRENT_MODIFICATION"}

        resp = await file_client.get(f"/api/v1/teams/{team['id']}", headers=_user("m1"))
        members = resp.json()["members"]
        assert len(members) == 6 - statuses.count(200)
        assert [m["role"] for m in members].count("leader") == 1

    async def test_stale_team_version_is_a_conflict(
        self, file_client: AsyncClient, file_sessions
    ):
        problem_id = await _insert_problem(file_sessions)
        team = await _team_with_members(file_client, problem_id, [])
        team_id = UUID(team["id"])

        async with file_sessions() as session:
            loaded = await session.get(TeamDB, team_id)
            assert loaded is not None

            async with file_sessions() as other:
                await other.execute(
                    update(TeamDB)
                    .where(TeamDB.id == team_id)
                    .values(version=TeamDB.version + 1)
                    .execution_options(synchronize_session=False)
                )
                await other.commit()

            loaded.description = "Edited from a stale copy"
            with pytest.raises(ConflictError) as exc_info:
                await flush_or_conflict(session)
            assert exc_info.value.code == "CONCURRENT_MODIFICATION"


class TestConstraintRaces:
    """A writer that slips past a pre-check is stopped by the unique constraint."""

    async def test_second_membership_maps_to_already_in_team(
        self, client: AsyncClient, as_user, make_team
    ):
        await make_team("Nova", "u1")
        other = await make_team("Orbit", "u2")

        with patch(
            "hackteam.services.membership.ensure_not_in_team", AsyncMock(return_value=None)
        ):
            resp = await client.post(f"/api/v1/teams/{other['id']}/join", headers=as_user("u1"))

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "ALREADY_IN_TEAM"
        resp = await client.get(f"/api/v1/teams/{other['id']}", headers=as_user("u2"))
        assert len(resp.json()["members"]) == 1

    async def test_duplicate_vote_maps_to_conflict(
        self, client: AsyncClient, as_user, make_team
    ):
        team = await make_team("Nova", "lead")
        url = f"/api/v1/votes/teams/{team['id']}"
        body = {"rating": 4, "comment": "solid"}
        resp = await client.post(url, json=body, headers=as_user("voter"))
        assert resp.status_code == 201

        with patch("hackteam.services.voting.find_vote", AsyncMock(return_value=None)):
            resp = await client.post(url, json=body, headers=as_user("voter"))

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_VOTE"
        resp = await client.get(f"/api/v1/teams/{team['id']}", headers=as_user("voter"))
        assert resp.json()["total_votes"] == 1

    async def test_duplicate_name_maps_to_conflict_and_releases_slot(
        self, client: AsyncClient, as_user, make_problem, make_team, selection_count
    ):
        await make_team("Nova", "u1")
        problem_id = await make_problem(title="Second problem")

        with patch(
            "hackteam.services.membership.ensure_name_available", AsyncMock(return_value=None)
        ):
            resp = await client.post(
                "/api/v1/teams",
                json={"name": "NOVA", "problem_statement_id": str(problem_id)},
                headers=as_user("u2"),
            )

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_TEAM_NAME"
        assert await selection_count(problem_id) == 0

    async def test_second_custom_statement_maps_to_conflict(self, session):
        for title in ("Campus Lost and Found", "Campus Ride Sharing"):
            session.add(
                ProblemStatementDB(
                    title=title,
                    description=f"{title} description",
                    domain="Community",
                    selection_count=0,
                    visibility=ProblemStatementVisibility.PRIVATE,
                    created_by="author",
                )
            )

        with pytest.raises(ConflictError) as exc_info:
            await flush_or_conflict(session)
        assert exc_info.value.code == "DUPLICATE_CUSTOM_STATEMENT"

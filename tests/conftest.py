"""Shared fixtures: in-memory SQLite database and an in-process API client."""

import os

# Must be set before the app (and its settings) are imported
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTO_CREATE_TABLES"] = "false"

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from typing import Any  # noqa: E402
from uuid import UUID  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from hackteam.api.rate_limit import limiter  # noqa: E402
from hackteam.db import Base, ProblemStatementDB, get_session  # noqa: E402
from hackteam.main import app  # noqa: E402
from hackteam.models.enums import ProblemStatementVisibility  # noqa: E402

limiter.enabled = False


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """A session for direct database checks, separate from request sessions."""
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """API client; each request gets its own committed-or-rolled-back session."""

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
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


@pytest.fixture
def as_user() -> Callable[..., dict[str, str]]:
    """Build identity headers for a user id and optional role."""

    def _headers(user_id: str, role: str | None = None) -> dict[str, str]:
        headers = {"X-User-Id": user_id}
        if role:
            headers["X-User-Role"] = role
        return headers

    return _headers


@pytest.fixture
def make_problem(
    session_maker: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[UUID]]:
    """Insert a catalog problem statement directly and return its id."""

    async def _make(
        title: str = "Smart Campus Energy",
        domain: str = "Sustainability",
        selection_count: int = 0,
        **fields: Any,
    ) -> UUID:
        async with session_maker() as session:
            problem = ProblemStatementDB(
                title=title,
                description=fields.pop("description", f"{title} description"),
                domain=domain,
                selection_count=selection_count,
                visibility=fields.pop("visibility", ProblemStatementVisibility.CATALOG),
                **fields,
            )
            session.add(problem)
            await session.commit()
            return problem.id

    return _make


@pytest.fixture
def make_team(
    client: AsyncClient,
    as_user: Callable[..., dict[str, str]],
    make_problem: Callable[..., Awaitable[UUID]],
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Create a team through the API, led by leader_id and joined by members in order."""

    async def _make(
        name: str,
        leader_id: str,
        members: list[str] | None = None,
        problem_statement_id: UUID | None = None,
    ) -> dict[str, Any]:
        if problem_statement_id is None:
            problem_statement_id = await make_problem(title=f"Problem for {name}")
        resp = await client.post(
            "/api/v1/teams",
            json={"name": name, "problem_statement_id": str(problem_statement_id)},
            headers=as_user(leader_id),
        )
        assert resp.status_code == 201, resp.text
        team = resp.json()
        for member_id in members or []:
            resp = await client.post(
                f"/api/v1/teams/{team['id']}/join", headers=as_user(member_id)
            )
            assert resp.status_code == 200, resp.text
            team = resp.json()
        return team

    return _make


@pytest.fixture
def selection_count(
    session_maker: async_sessionmaker[AsyncSession],
) -> Callable[[UUID], Awaitable[int]]:
    """Read a problem statement's stored selection count."""

    async def _count(problem_statement_id: UUID) -> int:
        async with session_maker() as session:
            problem = await session.get(ProblemStatementDB, UUID(str(problem_statement_id)))
            assert problem is not None
            return problem.selection_count

    return _count

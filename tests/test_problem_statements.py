"""Tests for /api/v1/problem-statements endpoints."""

from uuid import uuid4

from httpx import AsyncClient

CUSTOM = {
    "title": "Campus Lost and Found",
    "description": "A platform that matches lost items with found reports using photos "
    "and location hints across the campus.",
    "domain": "Community",
    "topic": "Matching",
    "suggested_technologies": "FastAPI, Postgres",
}


class TestListProblemStatements:
    """Tests for GET /api/v1/problem-statements endpoint."""

    async def test_list_includes_selection_counts(
        self, client: AsyncClient, as_user, make_problem
    ):
        await make_problem(title="Open problem", selection_count=1)
        await make_problem(title="Taken problem", selection_count=4)

        resp = await client.get("/api/v1/problem-statements", headers=as_user("u1"))

        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        by_title = {p["title"]: p for p in data["results"]}
        assert by_title["Open problem"]["selection_count"] == 1
        assert by_title["Open problem"]["remaining_slots"] == 3
        assert by_title["Open problem"]["is_available"] is True
        assert by_title["Taken problem"]["remaining_slots"] == 0
        assert by_title["Taken problem"]["is_available"] is False

    async def test_filter_by_domain(self, client: AsyncClient, as_user, make_problem):
        await make_problem(title="Grid balancing", domain="Energy")
        await make_problem(title="Clinic queueing", domain="Healthcare")

        resp = await client.get(
            "/api/v1/problem-statements", params={"domain": "energy"}, headers=as_user("u1")
        )
        assert [p["title"] for p in resp.json()["results"]] == ["Grid balancing"]

        resp = await client.get(
            "/api/v1/problem-statements", params={"domain": "all"}, headers=as_user("u1")
        )
        assert resp.json()["total"] == 2

    async def test_search_matches_technologies(
        self, client: AsyncClient, as_user, make_problem
    ):
        await make_problem(title="Grid balancing", suggested_technologies="Rust, Kafka")
        await make_problem(title="Clinic queueing", suggested_technologies="Django")

        resp = await client.get(
            "/api/v1/problem-statements", params={"search": "kafka"}, headers=as_user("u1")
        )
        assert [p["title"] for p in resp.json()["results"]] == ["Grid balancing"]

    async def test_search_treats_wildcards_literally(
        self, client: AsyncClient, as_user, make_problem
    ):
        await make_problem(title="Grid balancing")
        resp = await client.get(
            "/api/v1/problem-statements", params={"search": "%"}, headers=as_user("u1")
        )
        assert resp.json()["total"] == 0

    async def test_pagination(self, client: AsyncClient, as_user, make_problem):
        for i in range(5):
            await make_problem(title=f"Problem {i}")

        resp = await client.get(
            "/api/v1/problem-statements",
            params={"page": 3, "page_size": 2},
            headers=as_user("u1"),
        )
        data = resp.json()
        assert data["total"] == 5
        assert data["total_pages"] == 3
        assert len(data["results"]) == 1

    async def test_page_size_is_bounded(self, client: AsyncClient, as_user):
        resp = await client.get(
            "/api/v1/problem-statements", params={"page_size": 1000}, headers=as_user("u1")
        )
        assert resp.status_code == 422


class TestCustomProblemStatements:
    """Tests for custom problem statements."""

    async def test_create_custom_visible_only_to_author(self, client: AsyncClient, as_user):
        resp = await client.post(
            "/api/v1/problem-statements/custom", json=CUSTOM, headers=as_user("author")
        )
        assert resp.status_code == 201, resp.text
        problem = resp.json()
        assert problem["visibility"] == "private"
        assert problem["created_by"] == "author"
        assert problem["selection_count"] == 0

        resp = await client.get("/api/v1/problem-statements", headers=as_user("author"))
        assert [p["id"] for p in resp.json()["results"]] == [problem["id"]]

        resp = await client.get("/api/v1/problem-statements", headers=as_user("someone"))
        assert resp.json()["total"] == 0

        resp = await client.get(
            f"/api/v1/problem-statements/{problem['id']}", headers=as_user("someone")
        )
        assert resp.status_code == 404

    async def test_one_custom_statement_per_user(self, client: AsyncClient, as_user):
        await client.post(
            "/api/v1/problem-statements/custom", json=CUSTOM, headers=as_user("author")
        )
        resp = await client.post(
            "/api/v1/problem-statements/custom",
            json={**CUSTOM, "title": "Another campus idea"},
            headers=as_user("author"),
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_CUSTOM_STATEMENT"

    async def test_custom_minimum_lengths(self, client: AsyncClient, as_user):
        resp = await client.post(
            "/api/v1/problem-statements/custom",
            json={**CUSTOM, "title": "Too short"},
            headers=as_user("author"),
        )
        assert resp.status_code == 422

        resp = await client.post(
            "/api/v1/problem-statements/custom",
            json={**CUSTOM, "description": "Not nearly long enough."},
            headers=as_user("author"),
        )
        assert resp.status_code == 422

    async def test_get_my_custom_statement(self, client: AsyncClient, as_user):
        resp = await client.get(
            "/api/v1/problem-statements/custom/mine", headers=as_user("author")
        )
        assert resp.status_code == 404

        await client.post(
            "/api/v1/problem-statements/custom", json=CUSTOM, headers=as_user("author")
        )
        resp = await client.get(
            "/api/v1/problem-statements/custom/mine", headers=as_user("author")
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == CUSTOM["title"]

    async def test_custom_statement_counts_toward_cap(
        self, client: AsyncClient, as_user, selection_count
    ):
        """The author can build a team on it; other users cannot see or pick it."""
        resp = await client.post(
            "/api/v1/problem-statements/custom", json=CUSTOM, headers=as_user("author")
        )
        problem_id = resp.json()["id"]

        resp = await client.post(
            "/api/v1/teams",
            json={"name": "Finders", "problem_statement_id": problem_id},
            headers=as_user("author"),
        )
        assert resp.status_code == 201
        assert await selection_count(problem_id) == 1

        resp = await client.post(
            "/api/v1/teams",
            json={"name": "Keepers", "problem_statement_id": problem_id},
            headers=as_user("other"),
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "PROBLEM_STATEMENT_NOT_FOUND"


class TestCatalogAdministration:
    """Tests for POST /api/v1/problem-statements endpoint."""

    async def test_admin_creates_catalog_entry(self, client: AsyncClient, as_user):
        resp = await client.post(
            "/api/v1/problem-statements",
            json={"title": "Flood alerts", "description": "Early warning", "domain": "Climate"},
            headers=as_user("organizer", "admin"),
        )
        assert resp.status_code == 201
        assert resp.json()["visibility"] == "catalog"
        assert resp.json()["created_by"] is None

        resp = await client.get("/api/v1/problem-statements", headers=as_user("anyone"))
        assert resp.json()["total"] == 1

    async def test_participant_cannot_create_catalog_entry(self, client: AsyncClient, as_user):
        resp = await client.post(
            "/api/v1/problem-statements",
            json={"title": "Flood alerts", "description": "Early warning", "domain": "Climate"},
            headers=as_user("someone"),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ADMIN_REQUIRED"

    async def test_unknown_role_is_rejected(self, client: AsyncClient, as_user):
        resp = await client.get(
            "/api/v1/problem-statements", headers=as_user("someone", "wizard")
        )
        assert resp.status_code == 401

    async def test_get_unknown_problem_statement(self, client: AsyncClient, as_user):
        resp = await client.get(f"/api/v1/problem-statements/{uuid4()}", headers=as_user("u1"))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "PROBLEM_STATEMENT_NOT_FOUND"

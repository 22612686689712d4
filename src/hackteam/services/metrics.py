"""Prometheus metrics for the hackteam service."""

import time
from typing import Any

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from hackteam.db.models import TeamDB, VoteDB

HTTP_REQUESTS = Counter(
    "hackteam_http_requests_total",
    "HTTP requests by method, route and status",
    ["method", "route", "status"],
)
HTTP_LATENCY = Histogram(
    "hackteam_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"],
)
TEAM_OPERATIONS = Counter(
    "hackteam_team_operations_total",
    "Team lifecycle operations by outcome",
    ["operation"],
)
VOTE_OPERATIONS = Counter(
    "hackteam_vote_operations_total",
    "Vote ledger writes",
    ["operation"],
)
CONFLICTS = Counter(
    "hackteam_conflicts_total",
    "Capacity and concurrency conflicts returned to callers",
    ["code"],
)
TEAMS_GAUGE = Gauge("hackteam_teams", "Current number of teams")
VOTES_GAUGE = Gauge("hackteam_votes", "Current number of votes")


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record request counts and latency per route template."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        start = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        path = getattr(route, "path", "unmatched")
        HTTP_REQUESTS.labels(request.method, path, str(response.status_code)).inc()
        HTTP_LATENCY.labels(request.method, path).observe(time.perf_counter() - start)
        return response


def get_metrics() -> bytes:
    """Render all metrics in Prometheus text format."""
    return generate_latest()


async def update_gauge_metrics(session: AsyncSession) -> None:
    """Refresh gauges from current table sizes."""
    team_count = await session.scalar(select(func.count(TeamDB.id)))
    vote_count = await session.scalar(select(func.count(VoteDB.id)))
    TEAMS_GAUGE.set(team_count or 0)
    VOTES_GAUGE.set(vote_count or 0)


__all__ = [
    "CONFLICTS",
    "CONTENT_TYPE_LATEST",
    "MetricsMiddleware",
    "TEAM_OPERATIONS",
    "VOTE_OPERATIONS",
    "get_metrics",
    "update_gauge_metrics",
]

"""Organizer maintenance endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hackteam.api.auth import Auth, RequireAdmin
from hackteam.api.rate_limit import limit_admin
from hackteam.db import get_session
from hackteam.services.reconcile import reconcile_counters

router = APIRouter()


@router.post("/reconcile")
@limit_admin
async def reconcile(
    request: Request,
    auth: Auth,
    dry_run: bool = Query(True, description="Report drift without repairing it"),
    _: None = RequireAdmin,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Recompute selection counts and vote aggregates from source rows.

    Requires an organizer role. With dry_run=false, drifted values are repaired.
    """
    drifts = await reconcile_counters(session, dry_run=dry_run, actor_id=auth.user_id)
    return {
        "dry_run": dry_run,
        "drift_count": len(drifts),
        "repaired": not dry_run and bool(drifts),
        "drifts": [
            {
                "entity_type": d.entity_type,
                "entity_id": str(d.entity_id),
                "field": d.field,
                "stored": d.stored,
                "actual": d.actual,
            }
            for d in drifts
        ],
    }

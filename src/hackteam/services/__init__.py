"""Business logic services."""

from hackteam.services.audit import (
    AuditAction,
    log_event,
    log_team_event,
    log_vote_event,
)
from hackteam.services.reconcile import CounterDrift, reconcile_counters
from hackteam.services.teams import TeamInvariantError, verify_invariants
from hackteam.services.voting import mean_rating

__all__ = [
    # Audit logging
    "AuditAction",
    "log_event",
    "log_team_event",
    "log_vote_event",
    # Team registry
    "TeamInvariantError",
    "verify_invariants",
    # Voting ledger
    "mean_rating",
    # Maintenance
    "CounterDrift",
    "reconcile_counters",
]

"""Database module."""

from hackteam.db.database import get_session, init_db
from hackteam.db.models import (
    AuditEventDB,
    Base,
    ProblemStatementDB,
    TeamDB,
    TeamMemberDB,
    VoteDB,
)

__all__ = [
    "Base",
    "get_session",
    "init_db",
    "ProblemStatementDB",
    "TeamDB",
    "TeamMemberDB",
    "VoteDB",
    "AuditEventDB",
]

"""Enumerations for hackteam entities."""

from enum import StrEnum


class UserRole(StrEnum):
    """Caller role supplied by the identity gateway."""

    PARTICIPANT = "participant"
    MENTOR = "mentor"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class MemberRole(StrEnum):
    """Role of a user inside a team."""

    LEADER = "leader"
    MEMBER = "member"


class TeamState(StrEnum):
    """Size-derived team state; only FULL gates joins."""

    FORMING = "forming"  # Leader alone
    ACTIVE = "active"  # 2 .. max-1 members
    FULL = "full"  # At capacity, no further joins


class ProblemStatementVisibility(StrEnum):
    """Who can see and select a problem statement."""

    CATALOG = "catalog"  # Shared catalog entry
    PRIVATE = "private"  # Custom entry, visible to its creator only


class LeaveOutcome(StrEnum):
    """What happened to the team when a member left."""

    LEFT = "left"  # Regular member removed
    LEADERSHIP_TRANSFERRED = "leadership_transferred"  # Leader left, someone else leads
    DISBANDED = "disbanded"  # Sole leader left, team deleted

"""Pydantic models for hackteam entities."""

from hackteam.models.enums import (
    LeaveOutcome,
    MemberRole,
    ProblemStatementVisibility,
    TeamState,
    UserRole,
)
from hackteam.models.problem_statement import (
    CustomProblemStatementCreate,
    ProblemStatement,
    ProblemStatementCreate,
)
from hackteam.models.team import (
    LeaveTeamRequest,
    LeaveTeamResult,
    Team,
    TeamCreate,
    TeamMember,
    TeamUpdate,
    TeamWithRating,
    TransferLeadershipRequest,
)
from hackteam.models.vote import (
    TeamAggregate,
    TeamVotes,
    Vote,
    VoteCheck,
    VoteCreate,
    VoteResult,
    VoteUpdate,
    VotingProgress,
)

__all__ = [
    # Enums
    "LeaveOutcome",
    "MemberRole",
    "ProblemStatementVisibility",
    "TeamState",
    "UserRole",
    # Problem statement
    "CustomProblemStatementCreate",
    "ProblemStatement",
    "ProblemStatementCreate",
    # Team
    "LeaveTeamRequest",
    "LeaveTeamResult",
    "Team",
    "TeamCreate",
    "TeamMember",
    "TeamUpdate",
    "TeamWithRating",
    "TransferLeadershipRequest",
    # Vote
    "TeamAggregate",
    "TeamVotes",
    "Vote",
    "VoteCheck",
    "VoteCreate",
    "VoteResult",
    "VoteUpdate",
    "VotingProgress",
]

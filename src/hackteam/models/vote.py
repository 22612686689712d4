"""Vote models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hackteam.config import settings


class VoteCreate(BaseModel):
    """Rating and mandatory comment for a team."""

    rating: int = Field(..., ge=1, le=5, strict=True, description="Whole stars, 1-5")
    comment: str = Field(..., max_length=settings.vote_comment_max_length)

    @field_validator("comment")
    @classmethod
    def validate_comment(cls, v: str) -> str:
        """Strip whitespace and reject empty comments."""
        v = v.strip()
        if not v:
            raise ValueError("Comment cannot be empty")
        return v


class VoteUpdate(VoteCreate):
    """Replacement rating and comment for an existing vote."""

    pass


class Vote(BaseModel):
    """Vote entity."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    voter_id: str
    team_id: UUID
    rating: int
    comment: str
    created_at: datetime
    updated_at: datetime


class TeamAggregate(BaseModel):
    """Derived rating of a team; rating is None when nobody has voted."""

    team_id: UUID
    rating: float | None = None
    total_votes: int = 0


class VoteResult(BaseModel):
    """A written vote together with the recomputed team aggregate."""

    vote: Vote
    aggregate: TeamAggregate


class VoteCheck(BaseModel):
    """Whether the caller has already voted for a team."""

    has_voted: bool
    vote: Vote | None = None


class TeamVotes(BaseModel):
    """All votes cast for one team."""

    team_id: UUID
    team_name: str
    votes: list[Vote]
    aggregate: TeamAggregate


class VotingProgress(BaseModel):
    """How far a voter is through the voting board."""

    own_team_id: UUID | None = None
    eligible_teams: int
    voted: int
    remaining: int
    completed: bool

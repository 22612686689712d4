"""Team models."""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from hackteam.config import settings
from hackteam.models.enums import LeaveOutcome, MemberRole, TeamState

# Team name pattern: letters, digits, spaces, hyphens, underscores
TEAM_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9 _\-]+$")


def team_state(member_count: int, capacity: int | None = None) -> TeamState:
    """Derive the size-based state of a team."""
    capacity = capacity or settings.team_max_members
    if member_count >= capacity:
        return TeamState.FULL
    if member_count <= 1:
        return TeamState.FORMING
    return TeamState.ACTIVE


def _clean_team_name(v: str) -> str:
    v = v.strip()
    if len(v) < settings.team_name_min_length:
        raise ValueError(
            f"Team name must be at least {settings.team_name_min_length} characters"
        )
    if len(v) > settings.team_name_max_length:
        raise ValueError(
            f"Team name must be at most {settings.team_name_max_length} characters"
        )
    if not TEAM_NAME_PATTERN.match(v):
        raise ValueError(
            "Team name can only contain letters, numbers, spaces, hyphens, and underscores"
        )
    return v


def _clean_description(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if len(v) > settings.team_description_max_length:
        raise ValueError(
            "Description must be at most "
            f"{settings.team_description_max_length} characters"
        )
    return v or None


class TeamCreate(BaseModel):
    """Fields for creating a team."""

    name: str
    description: str | None = None
    problem_statement_id: UUID

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Strip whitespace and validate name length and charset."""
        return _clean_team_name(v)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str | None) -> str | None:
        return _clean_description(v)


class TeamUpdate(BaseModel):
    """Fields a leader may change. The problem statement binding is immutable."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return _clean_team_name(v)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str | None) -> str | None:
        return _clean_description(v)


class LeaveTeamRequest(BaseModel):
    """Optional leadership transfer target when a leader leaves."""

    transfer_to_user_id: str | None = Field(None, min_length=1, max_length=64)


class TransferLeadershipRequest(BaseModel):
    """Hand leadership to another member without leaving."""

    new_leader_id: str = Field(..., min_length=1, max_length=64)


class TeamMember(BaseModel):
    """A member of a team."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    role: MemberRole
    joined_at: datetime


class Team(BaseModel):
    """Team entity."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    problem_statement_id: UUID
    members: list[TeamMember] = Field(default_factory=list)
    rating: float | None = None
    total_votes: int = 0
    created_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def leader_id(self) -> str | None:
        for member in self.members:
            if member.role == MemberRole.LEADER:
                return member.user_id
        return None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def member_count(self) -> int:
        return len(self.members)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def state(self) -> TeamState:
        return team_state(len(self.members))


class TeamWithRating(Team):
    """Team as shown on the voting board."""

    has_voted: bool = False


class LeaveTeamResult(BaseModel):
    """Outcome of leaving a team."""

    outcome: LeaveOutcome
    message: str
    team: Team | None = None
    new_leader_id: str | None = None

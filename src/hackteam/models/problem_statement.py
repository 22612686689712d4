"""Problem statement models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from hackteam.config import settings
from hackteam.models.enums import ProblemStatementVisibility


def _strip_optional(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None


class ProblemStatementBase(BaseModel):
    """Base problem statement fields."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1, max_length=100)
    topic: str | None = Field(None, max_length=255)
    suggested_technologies: str | None = Field(None, max_length=500)

    @field_validator("title", "description", "domain")
    @classmethod
    def strip_required(cls, v: str) -> str:
        """Strip whitespace and reject blank values."""
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be empty or whitespace only")
        return v

    @field_validator("topic", "suggested_technologies")
    @classmethod
    def strip_optional(cls, v: str | None) -> str | None:
        return _strip_optional(v)


class ProblemStatementCreate(ProblemStatementBase):
    """Catalog entry created by an organizer."""

    pass


class CustomProblemStatementCreate(ProblemStatementBase):
    """Private entry proposed by a participant (one per user)."""

    @field_validator("title")
    @classmethod
    def validate_title_length(cls, v: str) -> str:
        if len(v) < settings.custom_title_min_length:
            raise ValueError(
                f"Title must be at least {settings.custom_title_min_length} characters"
            )
        return v

    @field_validator("description")
    @classmethod
    def validate_description_length(cls, v: str) -> str:
        if len(v) < settings.custom_description_min_length:
            raise ValueError(
                f"Description must be at least {settings.custom_description_min_length} characters"
            )
        return v


class ProblemStatement(BaseModel):
    """Problem statement entity with its live selection counter."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    domain: str
    topic: str | None = None
    suggested_technologies: str | None = None
    selection_count: int
    visibility: ProblemStatementVisibility
    created_by: str | None = None
    created_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_slots(self) -> int:
        return max(settings.problem_statement_selection_cap - self.selection_count, 0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_available(self) -> bool:
        return self.selection_count < settings.problem_statement_selection_cap

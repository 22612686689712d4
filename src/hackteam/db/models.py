"""SQLAlchemy database models."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from hackteam.models.enums import MemberRole, ProblemStatementVisibility

# Opaque user ids come from the identity gateway
USER_ID_LENGTH = 64


def _utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ProblemStatementDB(Base):
    """Problem statement a team builds against; capacity-limited."""

    __tablename__ = "problem_statements"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    topic: Mapped[str | None] = mapped_column(String(255), nullable=True)
    suggested_technologies: Mapped[str | None] = mapped_column(String(500), nullable=True)
    selection_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    visibility: Mapped[ProblemStatementVisibility] = mapped_column(
        Enum(ProblemStatementVisibility),
        default=ProblemStatementVisibility.CATALOG,
        nullable=False,
        index=True,
    )
    # Set only for custom entries; unique so a user owns at most one
    created_by: Mapped[str | None] = mapped_column(
        String(USER_ID_LENGTH), nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )

    __table_args__ = (
        CheckConstraint("selection_count >= 0", name="ck_problem_statement_selection_count"),
    )


class TeamDB(Base):
    """Team database model - 1..N members, exactly one leader."""

    __tablename__ = "teams"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Lower-cased name, enforces case-insensitive uniqueness
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    problem_statement_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("problem_statements.id"), nullable=False, index=True
    )
    # Cached vote aggregate, recomputed from votes on every vote write
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_votes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    members: Mapped[list["TeamMemberDB"]] = relationship(
        back_populates="team",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=lambda: [TeamMemberDB.joined_at, TeamMemberDB.join_order],
    )


class TeamMemberDB(Base):
    """Membership of one user in one team."""

    __tablename__ = "team_members"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    team_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Unique: a user belongs to at most one team system-wide
    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    role: Mapped[MemberRole] = mapped_column(
        Enum(MemberRole), default=MemberRole.MEMBER, nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    join_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("user_id", name="uq_team_members_user_id"),)

    # Relationships
    team: Mapped["TeamDB"] = relationship(back_populates="members")


class VoteDB(Base):
    """Peer vote cast by a non-member toward a team."""

    __tablename__ = "votes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    voter_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False, index=True)
    team_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("voter_id", "team_id", name="uq_votes_voter_team"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_votes_rating_range"),
    )


class AuditEventDB(Base):
    """Audit event database model (append-only)."""

    __tablename__ = "audit_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(USER_ID_LENGTH), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )

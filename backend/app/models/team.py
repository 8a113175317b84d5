import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class TeamStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    not_completed = "not_completed"
    in_progress = "in_progress"
    ready_for_review = "ready_for_review"
    changes_required = "changes_required"
    completed = "completed"


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    scope_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    guide_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[TeamStatus] = mapped_column(
        SAEnum(TeamStatus, name="team_status"),
        nullable=False,
        default=TeamStatus.pending,
    )
    submission_phase: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, onupdate=func.now())


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_leader: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

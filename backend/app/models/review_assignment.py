import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class ReviewMode(str, Enum):
    online = "online"
    offline = "offline"


class ReviewAssignment(Base):
    __tablename__ = "review_assignments"
    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "faculty_id",
            "review_phase",
            name="uq_review_assignments_project_faculty_phase",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    faculty_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    review_phase: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    mode: Mapped[ReviewMode] = mapped_column(
        SAEnum(ReviewMode, name="review_mode"),
        nullable=False,
        default=ReviewMode.offline,
    )
    access_starts_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # None means permanent access.
    access_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    assigned_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

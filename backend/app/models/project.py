import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class ProjectStatus(str, Enum):
    available = "available"
    assigned = "assigned"
    completed = "completed"


class ProjectRequestStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="General")
    scope_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    max_team_size: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    status: Mapped[ProjectStatus] = mapped_column(
        SAEnum(ProjectStatus, name="project_status"),
        nullable=False,
        default=ProjectStatus.available,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ProjectRequest(Base):
    __tablename__ = "project_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[ProjectRequestStatus] = mapped_column(
        SAEnum(ProjectRequestStatus, name="project_request_status"),
        nullable=False,
        default=ProjectRequestStatus.pending,
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class Scope(Base):
    __tablename__ = "scopes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    number_of_phases: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    timer_total_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_timer_running: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_remaining_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timer_last_updated: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ScopeStudent(Base):
    __tablename__ = "scope_students"
    __table_args__ = (
        UniqueConstraint("scope_id", "student_id", name="uq_scope_students_scope_student"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    scope_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

"""create venues, lab sessions and activity logs

Revision ID: 20261012_0004
Revises: 20261012_0003
Create Date: 2026-10-12 00:30:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261012_0004"
down_revision = "20261012_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "venues",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_venues_name", "venues", ["name"], unique=True)

    op.create_table(
        "lab_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("venue_id", sa.String(length=36), nullable=False),
        sa.Column("faculty_id", sa.String(length=36), nullable=False),
        sa.Column("scope_id", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_lab_sessions_venue_id", "lab_sessions", ["venue_id"])
    op.create_index("ix_lab_sessions_faculty_id", "lab_sessions", ["faculty_id"])
    op.create_index("ix_lab_sessions_scope_id", "lab_sessions", ["scope_id"])
    op.create_index("ix_lab_sessions_start_time", "lab_sessions", ["start_time"])

    op.create_table(
        "lab_session_students",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.UniqueConstraint("session_id", "student_id", name="uq_lab_session_students_session_student"),
    )
    op.create_index("ix_lab_session_students_session_id", "lab_session_students", ["session_id"])
    op.create_index("ix_lab_session_students_student_id", "lab_session_students", ["student_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_lab_session_students_student_id", table_name="lab_session_students")
    op.drop_index("ix_lab_session_students_session_id", table_name="lab_session_students")
    op.drop_table("lab_session_students")
    op.drop_index("ix_lab_sessions_start_time", table_name="lab_sessions")
    op.drop_index("ix_lab_sessions_scope_id", table_name="lab_sessions")
    op.drop_index("ix_lab_sessions_faculty_id", table_name="lab_sessions")
    op.drop_index("ix_lab_sessions_venue_id", table_name="lab_sessions")
    op.drop_table("lab_sessions")
    op.drop_index("ix_venues_name", table_name="venues")
    op.drop_table("venues")

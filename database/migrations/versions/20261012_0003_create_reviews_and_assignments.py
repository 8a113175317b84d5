"""create reviews, marks and review assignments

Revision ID: 20261012_0003
Revises: 20261012_0002
Create Date: 2026-10-12 00:20:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261012_0003"
down_revision = "20261012_0002"
branch_labels = None
depends_on = None


review_status_enum = sa.Enum(
    "pending",
    "in_progress",
    "completed",
    "changes_required",
    "not_completed",
    name="review_status",
)
review_mode_enum = sa.Enum("online", "offline", name="review_mode")


def upgrade() -> None:
    op.create_table(
        "reviews",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("team_id", sa.String(length=36), nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=True),
        sa.Column("faculty_id", sa.String(length=36), nullable=True),
        sa.Column("review_phase", sa.Integer(), nullable=False),
        sa.Column("status", review_status_enum, nullable=False, server_default="pending"),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_reviews_team_id", "reviews", ["team_id"])
    op.create_index("ix_reviews_faculty_id", "reviews", ["faculty_id"])
    op.create_index("ix_reviews_status", "reviews", ["status"])

    op.create_table(
        "review_marks",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("review_id", sa.String(length=36), nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("marks", sa.Float(), nullable=False, server_default="0"),
        sa.Column("criterion_scores", sa.JSON(), nullable=False),
        sa.Column("criterion_total", sa.Float(), nullable=True),
        sa.Column("is_absent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_review_marks_review_id", "review_marks", ["review_id"])

    op.create_table(
        "review_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=False),
        sa.Column("faculty_id", sa.String(length=36), nullable=False),
        sa.Column("review_phase", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("mode", review_mode_enum, nullable=False, server_default="offline"),
        sa.Column("access_starts_at", sa.DateTime(), nullable=True),
        sa.Column("access_expires_at", sa.DateTime(), nullable=True),
        sa.Column("assigned_by_id", sa.String(length=36), nullable=True),
        sa.Column("assigned_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "project_id",
            "faculty_id",
            "review_phase",
            name="uq_review_assignments_project_faculty_phase",
        ),
    )
    op.create_index("ix_review_assignments_project_id", "review_assignments", ["project_id"])
    op.create_index("ix_review_assignments_faculty_id", "review_assignments", ["faculty_id"])


def downgrade() -> None:
    op.drop_index("ix_review_assignments_faculty_id", table_name="review_assignments")
    op.drop_index("ix_review_assignments_project_id", table_name="review_assignments")
    op.drop_table("review_assignments")
    op.drop_index("ix_review_marks_review_id", table_name="review_marks")
    op.drop_table("review_marks")
    op.drop_index("ix_reviews_status", table_name="reviews")
    op.drop_index("ix_reviews_faculty_id", table_name="reviews")
    op.drop_index("ix_reviews_team_id", table_name="reviews")
    op.drop_table("reviews")
    bind = op.get_bind()
    review_mode_enum.drop(bind, checkfirst=True)
    review_status_enum.drop(bind, checkfirst=True)

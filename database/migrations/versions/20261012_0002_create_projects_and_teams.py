"""create projects and teams

Revision ID: 20261012_0002
Revises: 20261012_0001
Create Date: 2026-10-12 00:10:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261012_0002"
down_revision = "20261012_0001"
branch_labels = None
depends_on = None


project_status_enum = sa.Enum("available", "assigned", "completed", name="project_status")
project_request_status_enum = sa.Enum("pending", "approved", "rejected", name="project_request_status")
team_status_enum = sa.Enum(
    "pending",
    "approved",
    "not_completed",
    "in_progress",
    "ready_for_review",
    "changes_required",
    "completed",
    name="team_status",
)


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=False, server_default="General"),
        sa.Column("scope_id", sa.String(length=36), nullable=True),
        sa.Column("max_team_size", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("status", project_status_enum, nullable=False, server_default="available"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_projects_scope_id", "projects", ["scope_id"])

    op.create_table(
        "project_requests",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("team_id", sa.String(length=36), nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=False),
        sa.Column("status", project_request_status_enum, nullable=False, server_default="pending"),
        sa.Column("requested_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_project_requests_team_id", "project_requests", ["team_id"])
    op.create_index("ix_project_requests_project_id", "project_requests", ["project_id"])

    op.create_table(
        "teams",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=True),
        sa.Column("scope_id", sa.String(length=36), nullable=True),
        sa.Column("guide_id", sa.String(length=36), nullable=True),
        sa.Column("status", team_status_enum, nullable=False, server_default="pending"),
        sa.Column("submission_phase", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_teams_project_id", "teams", ["project_id"])
    op.create_index("ix_teams_scope_id", "teams", ["scope_id"])

    op.create_table(
        "team_members",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("team_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_leader", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_team_members_user_id", table_name="team_members")
    op.drop_index("ix_team_members_team_id", table_name="team_members")
    op.drop_table("team_members")
    op.drop_index("ix_teams_scope_id", table_name="teams")
    op.drop_index("ix_teams_project_id", table_name="teams")
    op.drop_table("teams")
    op.drop_index("ix_project_requests_project_id", table_name="project_requests")
    op.drop_index("ix_project_requests_team_id", table_name="project_requests")
    op.drop_table("project_requests")
    op.drop_index("ix_projects_scope_id", table_name="projects")
    op.drop_table("projects")
    bind = op.get_bind()
    team_status_enum.drop(bind, checkfirst=True)
    project_request_status_enum.drop(bind, checkfirst=True)
    project_status_enum.drop(bind, checkfirst=True)

"""create users and scopes

Revision ID: 20261012_0001
Revises: None
Create Date: 2026-10-12 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261012_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "faculty", "student", name="user_role")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("roll_number", sa.String(length=50), nullable=True),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_roll_number", "users", ["roll_number"], unique=True)

    op.create_table(
        "scopes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False, unique=True),
        sa.Column("number_of_phases", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("timer_total_hours", sa.Integer(), nullable=True),
        sa.Column("is_timer_running", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("current_remaining_seconds", sa.Integer(), nullable=True),
        sa.Column("timer_last_updated", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "scope_students",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("scope_id", sa.String(length=36), nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.UniqueConstraint("scope_id", "student_id", name="uq_scope_students_scope_student"),
    )
    op.create_index("ix_scope_students_scope_id", "scope_students", ["scope_id"])
    op.create_index("ix_scope_students_student_id", "scope_students", ["student_id"])


def downgrade() -> None:
    op.drop_index("ix_scope_students_student_id", table_name="scope_students")
    op.drop_index("ix_scope_students_scope_id", table_name="scope_students")
    op.drop_table("scope_students")
    op.drop_table("scopes")
    op.drop_index("ix_users_roll_number", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    user_role_enum.drop(op.get_bind(), checkfirst=True)

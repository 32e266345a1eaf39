"""create users and parent relationships

Revision ID: a7c3e9d2b4f1
Revises:
Create Date: 2026-10-18 09:00:00.000000

This migration:
1. Creates the user_role, relationship_type and relationship_status enums
2. Creates the users table with login security columns
3. Creates the parent_relationships table

parent_id is nullable (email-only relationships), so there is no database
uniqueness constraint on (parent, student, type); open duplicates are refused
by the service layer.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c3e9d2b4f1"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

USER_ROLES = ("admin", "teacher", "student", "parent")
RELATIONSHIP_TYPES = ("parent", "guardian", "other")
RELATIONSHIP_STATUSES = ("pending", "verified", "rejected", "pending_parent_registration")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create users and parent_relationships."""
    bind = op.get_bind()
    user_role = postgresql.ENUM(*USER_ROLES, name="user_role", create_type=False)
    relationship_type = postgresql.ENUM(
        *RELATIONSHIP_TYPES, name="relationship_type", create_type=False
    )
    relationship_status = postgresql.ENUM(
        *RELATIONSHIP_STATUSES, name="relationship_status", create_type=False
    )
    user_role.create(bind, checkfirst=True)
    relationship_type.create(bind, checkfirst=True)
    relationship_status.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=True),
        sa.Column("grade", sa.String(length=20), nullable=True),
        sa.Column("profile_picture", sa.String(length=500), nullable=True),
        sa.Column("role", user_role, nullable=False, server_default="student"),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("account_locked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("account_suspended", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "parent_relationships",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        sa.Column("parent_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("student_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column(
            "relationship_type", relationship_type, nullable=False, server_default="parent"
        ),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", relationship_status, nullable=False, server_default="pending"),
        sa.Column("verification_token", sa.String(length=128), nullable=False),
        sa.Column("token_expiry", sa.DateTime(timezone=True), nullable=False),
        sa.Column("parent_email", sa.String(length=255), nullable=True),
        sa.Column("parent_first_name", sa.String(length=100), nullable=True),
        sa.Column("parent_last_name", sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["parent_id"],
            ["users.id"],
            name="fk_parent_relationships_parent_id",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["student_id"],
            ["users.id"],
            name="fk_parent_relationships_student_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("verification_token", name="uq_parent_relationships_token"),
    )
    op.create_index("ix_parent_relationships_parent_id", "parent_relationships", ["parent_id"])
    op.create_index("ix_parent_relationships_student_id", "parent_relationships", ["student_id"])
    op.create_index(
        "ix_parent_relationships_parent_email", "parent_relationships", ["parent_email"]
    )
    op.create_index("ix_parent_relationships_status", "parent_relationships", ["status"])


def downgrade() -> None:
    """Drop parent_relationships, users and their enums."""
    op.drop_index("ix_parent_relationships_status", table_name="parent_relationships")
    op.drop_index("ix_parent_relationships_parent_email", table_name="parent_relationships")
    op.drop_index("ix_parent_relationships_student_id", table_name="parent_relationships")
    op.drop_index("ix_parent_relationships_parent_id", table_name="parent_relationships")
    op.drop_table("parent_relationships")

    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    postgresql.ENUM(name="relationship_status").drop(bind, checkfirst=True)
    postgresql.ENUM(name="relationship_type").drop(bind, checkfirst=True)
    postgresql.ENUM(name="user_role").drop(bind, checkfirst=True)

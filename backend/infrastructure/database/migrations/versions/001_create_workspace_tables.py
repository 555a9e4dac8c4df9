"""Create workspace tables

projects, project_members, conversations, messages and sources. Mirrors
migrations/001_create_workspace_tables.sql.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
ACTIVE_ROWS = sa.text("deleted_at IS NULL")


def _timestamps(soft_delete: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]
    if soft_delete:
        columns.append(sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        sa.Column("settings", JSON, nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
    )
    op.create_index("idx_projects_owner_id", "projects", ["owner_id"])
    op.create_index(
        "idx_projects_status",
        "projects",
        ["status"],
        postgresql_where=ACTIVE_ROWS,
        sqlite_where=ACTIVE_ROWS,
    )

    op.create_table(
        "project_members",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(length=255),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False, server_default="viewer"),
        *_timestamps(soft_delete=False),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )
    op.create_index("idx_project_members_project_id", "project_members", ["project_id"])
    op.create_index("idx_project_members_user_id", "project_members", ["user_id"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(length=255),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        sa.Column("metadata", JSON, nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
    )
    op.create_index("idx_conversations_project_id", "conversations", ["project_id"])
    op.create_index("idx_conversations_user_id", "conversations", ["user_id"])
    op.create_index(
        "idx_conversations_status",
        "conversations",
        ["status"],
        postgresql_where=ACTIVE_ROWS,
        sqlite_where=ACTIVE_ROWS,
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.String(length=255),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False, server_default="user"),
        sa.Column("metadata", JSON, nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
    )
    op.create_index("idx_messages_conversation_id", "messages", ["conversation_id"])
    op.create_index("idx_messages_user_id", "messages", ["user_id"])
    op.create_index("idx_messages_created_at", "messages", ["created_at"])

    op.create_table(
        "sources",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(length=255),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("metadata", JSON, nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
    )
    op.create_index("idx_sources_project_id", "sources", ["project_id"])
    op.create_index("idx_sources_user_id", "sources", ["user_id"])


def downgrade() -> None:
    op.drop_table("messages")
    op.drop_table("sources")
    op.drop_table("conversations")
    op.drop_table("project_members")
    op.drop_table("projects")

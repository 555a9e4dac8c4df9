"""
Project and project membership database models.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, SoftDeleteMixin, TimestampMixin, generate_id


class ProjectStatus(str, Enum):
    """Project lifecycle status."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    COMPLETED = "completed"


class ProjectMemberRole(str, Enum):
    """Project member role enumeration."""

    OWNER = "owner"  # Full control, can delete project and manage members
    EDITOR = "editor"  # Edit project, conversations and sources
    VIEWER = "viewer"  # Read-only access


# Sort order used when listing members
ROLE_RANK = {
    ProjectMemberRole.OWNER.value: 1,
    ProjectMemberRole.EDITOR.value: 2,
    ProjectMemberRole.VIEWER.value: 3,
}


class Project(Base, TimestampMixin, SoftDeleteMixin):
    """Project model, the tenant boundary for conversations and sources."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=generate_id)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default=ProjectStatus.ACTIVE.value,
        server_default=ProjectStatus.ACTIVE.value,
        nullable=False,
    )
    settings: Mapped[dict] = mapped_column(
        JSONType, default=dict, server_default=text("'{}'"), nullable=False
    )

    # Relationships. Children are removed by ON DELETE CASCADE in the database.
    members = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )
    conversations = relationship(
        "Conversation",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )
    sources = relationship(
        "Source",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )

    # Note: owner_id already has index=True on its column definition
    __table_args__ = (
        Index(
            "idx_projects_status",
            "status",
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        """Check if project is active (not deleted)."""
        return self.deleted_at is None


class ProjectMember(Base, TimestampMixin):
    """Project member model (junction table between users and projects)."""

    __tablename__ = "project_members"

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=generate_id)
    project_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(50),
        default=ProjectMemberRole.VIEWER.value,
        server_default=ProjectMemberRole.VIEWER.value,
        nullable=False,
    )

    project = relationship("Project", back_populates="members")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )

    def __repr__(self) -> str:
        return f"<ProjectMember(id={self.id}, project_id={self.project_id}, user_id={self.user_id}, role={self.role})>"

    @property
    def joined_at(self):
        return self.created_at

    @property
    def is_owner(self) -> bool:
        return self.role == ProjectMemberRole.OWNER.value

    @property
    def can_edit(self) -> bool:
        """Owners and editors may modify project content."""
        return self.role in (ProjectMemberRole.OWNER.value, ProjectMemberRole.EDITOR.value)

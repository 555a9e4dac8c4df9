"""
Project source (reference material) database model.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, SoftDeleteMixin, TimestampMixin, generate_id


class SourceType(str, Enum):
    """Kind of material a source holds."""

    FILE = "file"
    URL = "url"
    TEXT = "text"
    GITHUB = "github"
    DATABASE = "database"
    API = "api"


class Source(Base, TimestampMixin, SoftDeleteMixin):
    """
    Source model - reference material attached to a project.

    A source either points somewhere (``url``) or carries its body inline
    (``content``).
    """

    __tablename__ = "sources"

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=generate_id)
    project_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta: Mapped[dict] = mapped_column(
        "metadata", JSONType, default=dict, server_default=text("'{}'"), nullable=False
    )

    project = relationship("Project", back_populates="sources")

    def __repr__(self) -> str:
        return f"<Source(id={self.id}, project_id={self.project_id}, name={self.name}, type={self.type})>"

    @property
    def size_bytes(self) -> int:
        """Size of the inline content in bytes."""
        return len(self.content.encode("utf-8")) if self.content else 0

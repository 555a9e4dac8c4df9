"""
Conversation and message database models.
"""

from enum import Enum

from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, SoftDeleteMixin, TimestampMixin, generate_id


class ConversationStatus(str, Enum):
    """Conversation status enumeration."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class MessageRole(str, Enum):
    """Author role of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Conversation(Base, TimestampMixin, SoftDeleteMixin):
    """A chat thread inside a project."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=generate_id)
    project_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default=ConversationStatus.ACTIVE.value,
        server_default=ConversationStatus.ACTIVE.value,
        nullable=False,
    )
    # "metadata" is reserved on declarative classes, so the attribute is "meta"
    meta: Mapped[dict] = mapped_column(
        "metadata", JSONType, default=dict, server_default=text("'{}'"), nullable=False
    )

    project = relationship("Project", back_populates="conversations")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )

    __table_args__ = (
        Index(
            "idx_conversations_status",
            "status",
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, project_id={self.project_id}, title={self.title[:30]})>"


class Message(Base, TimestampMixin, SoftDeleteMixin):
    """A single message in a conversation."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=generate_id)
    conversation_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(
        String(50),
        default=MessageRole.USER.value,
        server_default=MessageRole.USER.value,
        nullable=False,
    )
    meta: Mapped[dict] = mapped_column(
        "metadata", JSONType, default=dict, server_default=text("'{}'"), nullable=False
    )

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("idx_messages_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, conversation_id={self.conversation_id}, role={self.role})>"

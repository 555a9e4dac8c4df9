"""
SQLAlchemy database models.
"""

from .base import Base, JSONType, SoftDeleteMixin, TimestampMixin
from .conversation import Conversation, ConversationStatus, Message, MessageRole
from .project import Project, ProjectMember, ProjectMemberRole, ProjectStatus
from .source import Source, SourceType

# Tables the workspace schema is made of, in dependency order
WORKSPACE_TABLES = (
    "projects",
    "project_members",
    "conversations",
    "messages",
    "sources",
)

__all__ = [
    "Base",
    "JSONType",
    "SoftDeleteMixin",
    "TimestampMixin",
    "Project",
    "ProjectMember",
    "ProjectMemberRole",
    "ProjectStatus",
    "Conversation",
    "ConversationStatus",
    "Message",
    "MessageRole",
    "Source",
    "SourceType",
    "WORKSPACE_TABLES",
]

"""
API request and response schemas.
"""

from .common import DetailResponse, Pagination
from .conversation import (
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
    ConversationUpdate,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageUpdate,
)
from .project import (
    ProjectCreate,
    ProjectListResponse,
    ProjectMemberAdd,
    ProjectMemberListResponse,
    ProjectMemberResponse,
    ProjectMemberUpdate,
    ProjectResponse,
    ProjectStatsResponse,
    ProjectUpdate,
)
from .source import (
    SourceCreate,
    SourceListResponse,
    SourceResponse,
    SourceStatsResponse,
    SourceUpdate,
)

__all__ = [
    "DetailResponse",
    "Pagination",
    "ConversationCreate",
    "ConversationListResponse",
    "ConversationResponse",
    "ConversationUpdate",
    "MessageCreate",
    "MessageListResponse",
    "MessageResponse",
    "MessageUpdate",
    "ProjectCreate",
    "ProjectListResponse",
    "ProjectMemberAdd",
    "ProjectMemberListResponse",
    "ProjectMemberResponse",
    "ProjectMemberUpdate",
    "ProjectResponse",
    "ProjectStatsResponse",
    "ProjectUpdate",
    "SourceCreate",
    "SourceListResponse",
    "SourceResponse",
    "SourceStatsResponse",
    "SourceUpdate",
]

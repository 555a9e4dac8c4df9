"""
Conversation and message API schemas.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .common import Pagination

# ORM models expose the "metadata" column as ``meta``
_METADATA_ALIAS = AliasChoices("meta", "metadata")


class ConversationCreate(BaseModel):
    project_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    metadata: Optional[dict] = None


class ConversationUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[str] = Field(None, description="active or archived")
    metadata: Optional[dict] = None


class ConversationResponse(BaseModel):
    id: str
    project_id: str
    user_id: str
    title: str
    status: str
    metadata: dict = Field(default_factory=dict, validation_alias=_METADATA_ALIAS)
    created_at: datetime
    updated_at: Optional[datetime] = None

    # Listing extras
    message_count: Optional[int] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConversationListResponse(BaseModel):
    conversations: List[ConversationResponse]
    pagination: Pagination


class MessageCreate(BaseModel):
    """New message. ``role`` defaults to ``user``."""

    content: str = Field(..., min_length=1)
    role: Optional[str] = Field(None, description="user, assistant or system")
    metadata: Optional[dict] = None


class MessageUpdate(BaseModel):
    content: Optional[str] = Field(None, min_length=1)
    metadata: Optional[dict] = None


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    user_id: str
    content: str
    role: str
    metadata: dict = Field(default_factory=dict, validation_alias=_METADATA_ALIAS)
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
    pagination: Pagination

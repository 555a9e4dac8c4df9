"""
Conversation and message API routes.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentUser, get_current_user
from api.middleware.rate_limit import get_rate_limit, limiter
from api.schemas.common import DetailResponse, Pagination
from api.schemas.conversation import (
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
    ConversationUpdate,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageUpdate,
)
from infrastructure.database.connection import get_db
from services import conversations as conversation_service

router = APIRouter(prefix="/conversations", tags=["Conversations"])

UserDep = Annotated[CurrentUser, Depends(get_current_user)]
DbDep = Annotated[AsyncSession, Depends(get_db)]


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    current_user: UserDep,
    db: DbDep,
    project_id: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    page = await conversation_service.list_conversations(
        db, current_user.id, project_id=project_id, limit=limit, offset=offset
    )
    conversations = [
        ConversationResponse.model_validate(item.conversation).model_copy(
            update={
                "message_count": item.message_count,
                "last_message": item.last_message,
                "last_message_at": item.last_message_at,
            }
        )
        for item in page.items
    ]
    return ConversationListResponse(
        conversations=conversations, pagination=Pagination.from_page(page)
    )


@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(request: ConversationCreate, current_user: UserDep, db: DbDep):
    conversation = await conversation_service.create_conversation(
        db,
        current_user.id,
        project_id=request.project_id,
        title=request.title,
        metadata=request.metadata,
    )
    return ConversationResponse.model_validate(conversation)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(conversation_id: str, current_user: UserDep, db: DbDep):
    conversation = await conversation_service.get_conversation(db, conversation_id, current_user.id)
    return ConversationResponse.model_validate(conversation)


@router.put("/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: str, request: ConversationUpdate, current_user: UserDep, db: DbDep
):
    conversation = await conversation_service.update_conversation(
        db, conversation_id, current_user.id, request.model_dump(exclude_unset=True)
    )
    return ConversationResponse.model_validate(conversation)


@router.delete("/{conversation_id}", response_model=DetailResponse)
async def delete_conversation(conversation_id: str, current_user: UserDep, db: DbDep):
    """Delete a conversation and its messages. Creator or project owner only."""
    await conversation_service.delete_conversation(db, conversation_id, current_user.id)
    return DetailResponse(detail="Conversation deleted")


# =============================================================================
# Messages
# =============================================================================


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: str,
    current_user: UserDep,
    db: DbDep,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Messages in chronological order."""
    page = await conversation_service.list_messages(
        db, conversation_id, current_user.id, limit=limit, offset=offset
    )
    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in page.items],
        pagination=Pagination.from_page(page),
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(get_rate_limit("send_message"))
async def send_message(
    request: Request,
    conversation_id: str,
    body: MessageCreate,
    current_user: UserDep,
    db: DbDep,
):
    message = await conversation_service.send_message(
        db,
        conversation_id,
        current_user.id,
        content=body.content,
        role=body.role,
        metadata=body.metadata,
    )
    return MessageResponse.model_validate(message)


@router.put("/{conversation_id}/messages/{message_id}", response_model=MessageResponse)
async def update_message(
    conversation_id: str,
    message_id: str,
    request: MessageUpdate,
    current_user: UserDep,
    db: DbDep,
):
    message = await conversation_service.update_message(
        db,
        conversation_id,
        message_id,
        current_user.id,
        content=request.content,
        metadata=request.metadata,
    )
    return MessageResponse.model_validate(message)


@router.delete("/{conversation_id}/messages/{message_id}", response_model=DetailResponse)
async def delete_message(
    conversation_id: str, message_id: str, current_user: UserDep, db: DbDep
):
    await conversation_service.delete_message(db, conversation_id, message_id, current_user.id)
    return DetailResponse(detail="Message deleted")

"""
Conversation and message service.

Any project member can read, start conversations and post messages.
Conversations can be removed by their creator or the project owner;
messages can be edited or removed by their author or the project owner.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from infrastructure.database.models import (
    Conversation,
    ConversationStatus,
    Message,
    MessageRole,
    Project,
    ProjectMember,
)
from infrastructure.database.models.base import utcnow
from infrastructure.database.queries import Page
from services.projects import ProjectAccess, get_project_access

logger = logging.getLogger(__name__)

CONVERSATION_STATUSES = tuple(s.value for s in ConversationStatus)
MESSAGE_ROLES = tuple(r.value for r in MessageRole)


@dataclass
class ConversationSummary:
    conversation: Conversation
    message_count: int = 0
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None


async def _get_conversation_access(
    db: AsyncSession, conversation_id: str, user_id: str
) -> tuple[Conversation, ProjectAccess]:
    result = await db.execute(
        select(Conversation).where(
            and_(Conversation.id == conversation_id, Conversation.deleted_at.is_(None))
        )
    )
    conversation = result.scalar_one_or_none()
    if not conversation:
        raise NotFoundError("Conversation not found")

    try:
        access = await get_project_access(db, conversation.project_id, user_id)
    except NotFoundError:
        raise NotFoundError("Conversation not found or access denied")
    return conversation, access


async def _get_message(db: AsyncSession, conversation_id: str, message_id: str) -> Message:
    result = await db.execute(
        select(Message).where(
            Message.id == message_id,
            Message.conversation_id == conversation_id,
            Message.deleted_at.is_(None),
        )
    )
    message = result.scalar_one_or_none()
    if not message:
        raise NotFoundError("Message not found")
    return message


# =============================================================================
# Conversations
# =============================================================================


async def list_conversations(
    db: AsyncSession,
    user_id: str,
    project_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Page[ConversationSummary]:
    """Conversations in projects visible to the user, most recently active first."""
    if project_id:
        await get_project_access(db, project_id, user_id)

    member_projects = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
    conditions = [
        Conversation.deleted_at.is_(None),
        Project.deleted_at.is_(None),
        (Project.owner_id == user_id) | Project.id.in_(member_projects),
    ]
    if project_id:
        conditions.append(Conversation.project_id == project_id)

    total = (
        await db.execute(
            select(func.count())
            .select_from(Conversation)
            .join(Project, Conversation.project_id == Project.id)
            .where(*conditions)
        )
    ).scalar_one()

    result = await db.execute(
        select(Conversation)
        .join(Project, Conversation.project_id == Project.id)
        .where(*conditions)
        .order_by(Conversation.updated_at.desc())
        .limit(limit)
        .offset(offset)
    )
    conversations = result.scalars().all()
    ids = [c.id for c in conversations]

    counts: dict = {}
    latest: dict = {}
    if ids:
        count_rows = await db.execute(
            select(Message.conversation_id, func.count().label("cnt"))
            .where(Message.conversation_id.in_(ids), Message.deleted_at.is_(None))
            .group_by(Message.conversation_id)
        )
        counts = {row.conversation_id: row.cnt for row in count_rows}

        # One row per conversation: its newest live message
        ranked = (
            select(
                Message.conversation_id,
                Message.content,
                Message.created_at,
                func.row_number()
                .over(
                    partition_by=Message.conversation_id,
                    order_by=(Message.created_at.desc(), Message.id.desc()),
                )
                .label("rn"),
            )
            .where(Message.conversation_id.in_(ids), Message.deleted_at.is_(None))
            .subquery()
        )
        latest_rows = await db.execute(
            select(ranked.c.conversation_id, ranked.c.content, ranked.c.created_at).where(
                ranked.c.rn == 1
            )
        )
        latest = {row.conversation_id: row for row in latest_rows}

    items = []
    for conversation in conversations:
        last = latest.get(conversation.id)
        items.append(
            ConversationSummary(
                conversation=conversation,
                message_count=counts.get(conversation.id, 0),
                last_message=last.content if last else None,
                last_message_at=last.created_at if last else None,
            )
        )
    return Page(items=items, total=total, limit=limit, offset=offset)


async def create_conversation(
    db: AsyncSession,
    user_id: str,
    project_id: str,
    title: str,
    metadata: Optional[dict] = None,
) -> Conversation:
    if not title or not title.strip():
        raise ValidationFailedError("Conversation title is required")

    await get_project_access(db, project_id, user_id)

    conversation = Conversation(
        project_id=project_id,
        user_id=user_id,
        title=title.strip(),
        status=ConversationStatus.ACTIVE.value,
        meta=metadata or {},
    )
    db.add(conversation)
    await db.commit()
    await db.refresh(conversation)

    logger.info("Conversation %s created in project %s", conversation.id, project_id)
    return conversation


async def get_conversation(db: AsyncSession, conversation_id: str, user_id: str) -> Conversation:
    conversation, _ = await _get_conversation_access(db, conversation_id, user_id)
    return conversation


async def update_conversation(
    db: AsyncSession, conversation_id: str, user_id: str, updates: dict
) -> Conversation:
    conversation, _ = await _get_conversation_access(db, conversation_id, user_id)

    changed = False
    if updates.get("title") is not None:
        if not updates["title"].strip():
            raise ValidationFailedError("Conversation title cannot be empty")
        conversation.title = updates["title"].strip()
        changed = True
    if updates.get("status") is not None:
        if updates["status"] not in CONVERSATION_STATUSES:
            raise ValidationFailedError(
                f"Invalid status. Must be one of: {', '.join(CONVERSATION_STATUSES)}"
            )
        conversation.status = updates["status"]
        changed = True
    if updates.get("metadata") is not None:
        conversation.meta = updates["metadata"]
        changed = True

    if not changed:
        raise ValidationFailedError("No valid fields to update")

    conversation.updated_at = utcnow()
    await db.commit()
    await db.refresh(conversation)
    return conversation


async def delete_conversation(db: AsyncSession, conversation_id: str, user_id: str) -> None:
    """Soft-delete a conversation and its messages. Creator or project owner only."""
    conversation, access = await _get_conversation_access(db, conversation_id, user_id)
    if conversation.user_id != user_id and not access.is_owner:
        raise PermissionDeniedError(
            "Only the conversation creator or project owner can delete it"
        )

    now = utcnow()
    await db.execute(
        update(Message)
        .where(Message.conversation_id == conversation_id, Message.deleted_at.is_(None))
        .values(deleted_at=now)
    )
    conversation.deleted_at = now
    await db.commit()

    logger.info("Conversation %s deleted by user %s", conversation_id, user_id)


# =============================================================================
# Messages
# =============================================================================


async def send_message(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
    content: str,
    role: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Message:
    if not content or not content.strip():
        raise ValidationFailedError("Message content is required")

    role = role or MessageRole.USER.value
    if role not in MESSAGE_ROLES:
        raise ValidationFailedError(f"Invalid role. Must be one of: {', '.join(MESSAGE_ROLES)}")

    conversation, _ = await _get_conversation_access(db, conversation_id, user_id)

    message = Message(
        conversation_id=conversation_id,
        user_id=user_id,
        content=content,
        role=role,
        meta=metadata or {},
    )
    db.add(message)
    conversation.updated_at = utcnow()
    await db.commit()
    await db.refresh(message)
    return message


async def list_messages(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> Page[Message]:
    """Messages of a conversation, oldest first."""
    await _get_conversation_access(db, conversation_id, user_id)

    conditions = [Message.conversation_id == conversation_id, Message.deleted_at.is_(None)]
    total = (
        await db.execute(select(func.count()).select_from(Message).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(Message)
        .where(*conditions)
        .order_by(Message.created_at.asc())
        .limit(limit)
        .offset(offset)
    )
    return Page(items=list(result.scalars().all()), total=total, limit=limit, offset=offset)


async def update_message(
    db: AsyncSession,
    conversation_id: str,
    message_id: str,
    user_id: str,
    content: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Message:
    _, access = await _get_conversation_access(db, conversation_id, user_id)
    message = await _get_message(db, conversation_id, message_id)

    if message.user_id != user_id and not access.is_owner:
        raise PermissionDeniedError("Only the message author or project owner can edit it")

    if content is None and metadata is None:
        raise ValidationFailedError("No valid fields to update")
    if content is not None:
        if not content.strip():
            raise ValidationFailedError("Message content cannot be empty")
        message.content = content
    if metadata is not None:
        message.meta = metadata

    message.updated_at = utcnow()
    await db.commit()
    await db.refresh(message)
    return message


async def delete_message(
    db: AsyncSession, conversation_id: str, message_id: str, user_id: str
) -> None:
    _, access = await _get_conversation_access(db, conversation_id, user_id)
    message = await _get_message(db, conversation_id, message_id)

    if message.user_id != user_id and not access.is_owner:
        raise PermissionDeniedError("Only the message author or project owner can delete it")

    message.deleted_at = utcnow()
    await db.commit()

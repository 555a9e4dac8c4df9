"""
Source service: reference material attached to projects.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from infrastructure.database.models import Project, ProjectMember, Source, SourceType
from infrastructure.database.models.base import utcnow
from infrastructure.database.queries import Page, contains_pattern
from services.projects import ProjectAccess, get_project_access, require_project_editor

logger = logging.getLogger(__name__)

SOURCE_TYPES = tuple(t.value for t in SourceType)


@dataclass
class SourceStats:
    total: int = 0
    total_size_bytes: int = 0
    by_type: dict = field(default_factory=dict)


def _validate_payload(source_type: Optional[str], url: Optional[str], content: Optional[str]) -> None:
    if source_type is not None and source_type not in SOURCE_TYPES:
        raise ValidationFailedError(f"Invalid type. Must be one of: {', '.join(SOURCE_TYPES)}")
    if source_type == SourceType.URL.value and not url:
        raise ValidationFailedError("url is required for url sources")
    if source_type == SourceType.TEXT.value and not content:
        raise ValidationFailedError("content is required for text sources")


async def _get_source_access(
    db: AsyncSession, source_id: str, user_id: str
) -> tuple[Source, ProjectAccess]:
    result = await db.execute(
        select(Source).where(Source.id == source_id, Source.deleted_at.is_(None))
    )
    source = result.scalar_one_or_none()
    if not source:
        raise NotFoundError("Source not found")

    try:
        access = await get_project_access(db, source.project_id, user_id)
    except NotFoundError:
        raise NotFoundError("Source not found or access denied")
    return source, access


async def list_sources(
    db: AsyncSession,
    user_id: str,
    project_id: Optional[str] = None,
    source_type: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Page[Source]:
    if project_id:
        await get_project_access(db, project_id, user_id)

    member_projects = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
    conditions = [
        Source.deleted_at.is_(None),
        Project.deleted_at.is_(None),
        or_(Project.owner_id == user_id, Project.id.in_(member_projects)),
    ]
    if project_id:
        conditions.append(Source.project_id == project_id)
    if source_type:
        conditions.append(Source.type == source_type)
    if search:
        conditions.append(Source.name.ilike(contains_pattern(search), escape="\\"))

    base = select(Source).join(Project, Source.project_id == Project.id).where(*conditions)
    total = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar_one()

    result = await db.execute(
        base.order_by(Source.created_at.desc()).limit(limit).offset(offset)
    )
    return Page(items=list(result.scalars().all()), total=total, limit=limit, offset=offset)


async def create_source(
    db: AsyncSession,
    user_id: str,
    project_id: str,
    name: str,
    source_type: Optional[str] = None,
    url: Optional[str] = None,
    content: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Source:
    if not name or not name.strip():
        raise ValidationFailedError("Source name is required")
    _validate_payload(source_type, url, content)

    await require_project_editor(db, project_id, user_id)

    source = Source(
        project_id=project_id,
        user_id=user_id,
        name=name.strip(),
        type=source_type,
        url=url,
        content=content,
        meta=metadata or {},
    )
    db.add(source)
    await db.commit()
    await db.refresh(source)

    logger.info("Source %s added to project %s", source.id, project_id)
    return source


async def get_source(db: AsyncSession, source_id: str, user_id: str) -> Source:
    source, _ = await _get_source_access(db, source_id, user_id)
    return source


async def update_source(
    db: AsyncSession, source_id: str, user_id: str, updates: dict
) -> Source:
    source, access = await _get_source_access(db, source_id, user_id)
    if not access.can_edit:
        raise PermissionDeniedError("This action requires owner or editor privileges")

    changes = {
        k: v
        for k, v in updates.items()
        if k in ("name", "type", "url", "content", "metadata") and v is not None
    }
    if not changes:
        raise ValidationFailedError("No valid fields to update")
    if "name" in changes and not changes["name"].strip():
        raise ValidationFailedError("Source name cannot be empty")

    _validate_payload(
        changes.get("type", source.type),
        changes.get("url", source.url),
        changes.get("content", source.content),
    )

    for key, value in changes.items():
        setattr(source, "meta" if key == "metadata" else key, value)
    source.updated_at = utcnow()

    await db.commit()
    await db.refresh(source)
    return source


async def delete_source(db: AsyncSession, source_id: str, user_id: str) -> None:
    source, access = await _get_source_access(db, source_id, user_id)
    if not access.can_edit:
        raise PermissionDeniedError("This action requires owner or editor privileges")

    source.deleted_at = utcnow()
    await db.commit()
    logger.info("Source %s deleted by user %s", source_id, user_id)


async def download_source(db: AsyncSession, source_id: str, user_id: str) -> Source:
    """Return a source whose inline content can be served as a file."""
    source, _ = await _get_source_access(db, source_id, user_id)
    if source.content is None:
        raise ValidationFailedError("Source has no downloadable content")
    return source


async def get_source_stats(db: AsyncSession, project_id: str, user_id: str) -> SourceStats:
    await get_project_access(db, project_id, user_id)

    rows = await db.execute(
        select(Source.type, func.count().label("cnt"))
        .where(Source.project_id == project_id, Source.deleted_at.is_(None))
        .group_by(Source.type)
    )
    by_type = {(row.type or "unknown"): row.cnt for row in rows}

    # length() counts characters outside PostgreSQL
    byte_length = func.octet_length if db.get_bind().dialect.name == "postgresql" else func.length
    size = await db.execute(
        select(func.coalesce(func.sum(byte_length(Source.content)), 0)).where(
            Source.project_id == project_id, Source.deleted_at.is_(None)
        )
    )

    return SourceStats(
        total=sum(by_type.values()),
        total_size_bytes=int(size.scalar_one()),
        by_type=by_type,
    )

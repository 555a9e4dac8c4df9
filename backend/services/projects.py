"""
Project service: project CRUD, statistics and membership management.

Access rules:
- A user can see a project they own or are a member of.
- Owners and editors can update a project; only the owner can delete it
  or manage its members.
- Deleted projects (``deleted_at`` set) behave as if they do not exist.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from infrastructure.database.models import (
    Conversation,
    Message,
    Project,
    ProjectMember,
    ProjectMemberRole,
    ProjectStatus,
    Source,
)
from infrastructure.database.models.base import utcnow
from infrastructure.database.models.project import ROLE_RANK
from infrastructure.database.queries import Page, contains_pattern

logger = logging.getLogger(__name__)

VALID_ROLES = tuple(r.value for r in ProjectMemberRole)
UPDATABLE_FIELDS = ("name", "description", "status", "settings")


@dataclass
class ProjectAccess:
    """A project together with the caller's effective role in it."""

    project: Project
    role: str
    user_id: str

    @property
    def is_owner(self) -> bool:
        # A member granted the owner role can edit but does not own the project
        return self.project.owner_id == self.user_id

    @property
    def can_edit(self) -> bool:
        return self.role in (ProjectMemberRole.OWNER.value, ProjectMemberRole.EDITOR.value)


@dataclass
class ProjectSummary:
    project: Project
    user_role: Optional[str]
    conversation_count: int = 0
    source_count: int = 0


@dataclass
class ProjectStats:
    conversation_count: int
    message_count: int
    source_count: int


# =============================================================================
# Access helpers
# =============================================================================


def _accessible_by(user_id: str):
    """Filter for projects the user owns or belongs to."""
    member_projects = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
    return or_(Project.owner_id == user_id, Project.id.in_(member_projects))


async def _get_live_project(db: AsyncSession, project_id: str) -> Project:
    result = await db.execute(
        select(Project).where(
            and_(Project.id == project_id, Project.deleted_at.is_(None))
        )
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project not found")
    return project


async def get_member(
    db: AsyncSession, project_id: str, user_id: str
) -> Optional[ProjectMember]:
    result = await db.execute(
        select(ProjectMember).where(
            and_(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
        )
    )
    return result.scalar_one_or_none()


async def get_project_access(db: AsyncSession, project_id: str, user_id: str) -> ProjectAccess:
    """
    Resolve the caller's role in a live project.

    Raises:
        NotFoundError: project missing, deleted, or not visible to the user.
            Inaccessible projects answer 404 so their existence is not leaked.
    """
    result = await db.execute(
        select(Project).where(
            and_(
                Project.id == project_id,
                Project.deleted_at.is_(None),
                _accessible_by(user_id),
            )
        )
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project not found or access denied")

    if project.owner_id == user_id:
        return ProjectAccess(project=project, role=ProjectMemberRole.OWNER.value, user_id=user_id)

    member = await get_member(db, project_id, user_id)
    return ProjectAccess(project=project, role=member.role, user_id=user_id)


async def require_project_editor(db: AsyncSession, project_id: str, user_id: str) -> ProjectAccess:
    access = await get_project_access(db, project_id, user_id)
    if not access.can_edit:
        raise PermissionDeniedError("This action requires owner or editor privileges")
    return access


async def _require_owner(db: AsyncSession, project_id: str, user_id: str, action: str) -> Project:
    project = await _get_live_project(db, project_id)
    if project.owner_id != user_id:
        raise PermissionDeniedError(f"Only the project owner can {action}")
    return project


# =============================================================================
# Project CRUD
# =============================================================================


async def list_projects(
    db: AsyncSession,
    user_id: str,
    status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Page[ProjectSummary]:
    """List live projects the user owns or is a member of, most recently updated first."""
    conditions = [Project.deleted_at.is_(None), _accessible_by(user_id)]
    if status:
        conditions.append(Project.status == status)
    if search:
        pattern = contains_pattern(search)
        conditions.append(
            or_(
                Project.name.ilike(pattern, escape="\\"),
                Project.description.ilike(pattern, escape="\\"),
            )
        )

    total = (
        await db.execute(select(func.count()).select_from(Project).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(Project)
        .where(*conditions)
        .order_by(Project.updated_at.desc())
        .limit(limit)
        .offset(offset)
    )
    projects = result.scalars().all()
    project_ids = [p.id for p in projects]

    roles: dict = {}
    conversation_counts: dict = {}
    source_counts: dict = {}
    if project_ids:
        role_rows = await db.execute(
            select(ProjectMember.project_id, ProjectMember.role).where(
                ProjectMember.user_id == user_id,
                ProjectMember.project_id.in_(project_ids),
            )
        )
        roles = {row.project_id: row.role for row in role_rows}

        conv_rows = await db.execute(
            select(Conversation.project_id, func.count().label("cnt"))
            .where(Conversation.project_id.in_(project_ids), Conversation.deleted_at.is_(None))
            .group_by(Conversation.project_id)
        )
        conversation_counts = {row.project_id: row.cnt for row in conv_rows}

        source_rows = await db.execute(
            select(Source.project_id, func.count().label("cnt"))
            .where(Source.project_id.in_(project_ids), Source.deleted_at.is_(None))
            .group_by(Source.project_id)
        )
        source_counts = {row.project_id: row.cnt for row in source_rows}

    items = [
        ProjectSummary(
            project=p,
            user_role=ProjectMemberRole.OWNER.value if p.owner_id == user_id else roles.get(p.id),
            conversation_count=conversation_counts.get(p.id, 0),
            source_count=source_counts.get(p.id, 0),
        )
        for p in projects
    ]
    return Page(items=items, total=total, limit=limit, offset=offset)


async def create_project(
    db: AsyncSession,
    user_id: str,
    name: str,
    description: Optional[str] = None,
    settings: Optional[dict] = None,
) -> Project:
    """Create a project; the creator becomes its owner member in the same transaction."""
    if not name or not name.strip():
        raise ValidationFailedError("Project name is required")

    project = Project(
        name=name.strip(),
        description=description or "",
        owner_id=user_id,
        status=ProjectStatus.ACTIVE.value,
        settings=settings or {},
    )
    db.add(project)
    await db.flush()  # Get project ID

    db.add(
        ProjectMember(
            project_id=project.id,
            user_id=user_id,
            role=ProjectMemberRole.OWNER.value,
        )
    )
    await db.commit()
    await db.refresh(project)

    logger.info("Project %s created by user %s", project.id, user_id)
    return project


async def get_project(db: AsyncSession, project_id: str, user_id: str) -> ProjectAccess:
    return await get_project_access(db, project_id, user_id)


async def update_project(
    db: AsyncSession, project_id: str, user_id: str, updates: dict
) -> Project:
    """Update name, description, status or settings. Owner or editor only."""
    access = await require_project_editor(db, project_id, user_id)

    changes = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS and v is not None}
    if not changes:
        raise ValidationFailedError("No valid fields to update")

    project = access.project
    for key, value in changes.items():
        setattr(project, key, value)
    project.updated_at = utcnow()

    await db.commit()
    await db.refresh(project)
    return project


async def delete_project(db: AsyncSession, project_id: str, user_id: str) -> None:
    """
    Soft-delete a project and tombstone everything inside it.

    Conversations, their messages and sources are stamped with the same
    ``deleted_at`` in a single transaction. Owner only.
    """
    project = await _require_owner(db, project_id, user_id, "delete the project")
    now = utcnow()

    project_conversations = select(Conversation.id).where(Conversation.project_id == project_id)
    await db.execute(
        update(Message)
        .where(
            Message.conversation_id.in_(project_conversations),
            Message.deleted_at.is_(None),
        )
        .values(deleted_at=now)
    )
    await db.execute(
        update(Conversation)
        .where(Conversation.project_id == project_id, Conversation.deleted_at.is_(None))
        .values(deleted_at=now)
    )
    await db.execute(
        update(Source)
        .where(Source.project_id == project_id, Source.deleted_at.is_(None))
        .values(deleted_at=now)
    )
    project.deleted_at = now
    await db.commit()

    logger.info("Project %s soft-deleted by user %s", project_id, user_id)


async def purge_project(db: AsyncSession, project_id: str, user_id: str) -> None:
    """
    Permanently delete a project. Owner only.

    Members, conversations, messages and sources go with it through the
    ON DELETE CASCADE foreign keys. Works on live and soft-deleted projects.
    """
    result = await db.execute(select(Project).where(Project.id == project_id))
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project not found")
    if project.owner_id != user_id:
        raise PermissionDeniedError("Only the project owner can delete the project")

    await db.execute(delete(Project).where(Project.id == project_id))
    await db.commit()
    db.expunge_all()

    logger.warning("Project %s permanently deleted by user %s", project_id, user_id)


async def get_project_stats(db: AsyncSession, project_id: str, user_id: str) -> ProjectStats:
    await get_project_access(db, project_id, user_id)

    conversation_count = (
        await db.execute(
            select(func.count())
            .select_from(Conversation)
            .where(Conversation.project_id == project_id, Conversation.deleted_at.is_(None))
        )
    ).scalar_one()

    message_count = (
        await db.execute(
            select(func.count())
            .select_from(Message)
            .join(Conversation, Message.conversation_id == Conversation.id)
            .where(
                Conversation.project_id == project_id,
                Conversation.deleted_at.is_(None),
                Message.deleted_at.is_(None),
            )
        )
    ).scalar_one()

    source_count = (
        await db.execute(
            select(func.count())
            .select_from(Source)
            .where(Source.project_id == project_id, Source.deleted_at.is_(None))
        )
    ).scalar_one()

    return ProjectStats(
        conversation_count=conversation_count,
        message_count=message_count,
        source_count=source_count,
    )


# =============================================================================
# Members
# =============================================================================


async def list_members(db: AsyncSession, project_id: str, user_id: str) -> list[ProjectMember]:
    """Members ordered owner, editor, viewer, then by join time."""
    await get_project_access(db, project_id, user_id)

    rank = case(ROLE_RANK, value=ProjectMember.role, else_=len(ROLE_RANK) + 1)
    result = await db.execute(
        select(ProjectMember)
        .where(ProjectMember.project_id == project_id)
        .order_by(rank, ProjectMember.created_at.asc())
    )
    return list(result.scalars().all())


def _validate_role(role: str) -> None:
    if role not in VALID_ROLES:
        raise ValidationFailedError(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")


async def add_member(
    db: AsyncSession,
    project_id: str,
    user_id: str,
    new_user_id: str,
    role: str = ProjectMemberRole.VIEWER.value,
) -> ProjectMember:
    """Add a user to a project. Owner only; a user can be a member at most once."""
    await _require_owner(db, project_id, user_id, "add members")
    _validate_role(role)

    if await get_member(db, project_id, new_user_id):
        raise ConflictError("User is already a member of this project")

    member = ProjectMember(project_id=project_id, user_id=new_user_id, role=role)
    db.add(member)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same (project_id, user_id)
        await db.rollback()
        raise ConflictError("User is already a member of this project")
    await db.refresh(member)

    logger.info("User %s added to project %s as %s", new_user_id, project_id, role)
    return member


async def update_member_role(
    db: AsyncSession, project_id: str, user_id: str, member_user_id: str, role: str
) -> ProjectMember:
    project = await _require_owner(db, project_id, user_id, "change member roles")
    _validate_role(role)

    if member_user_id == project.owner_id:
        raise ValidationFailedError("Cannot change the project owner's role")

    member = await get_member(db, project_id, member_user_id)
    if not member:
        raise NotFoundError("Member not found in project")

    member.role = role
    await db.commit()
    await db.refresh(member)
    return member


async def remove_member(
    db: AsyncSession, project_id: str, user_id: str, member_user_id: str
) -> None:
    project = await _require_owner(db, project_id, user_id, "remove members")

    if member_user_id == project.owner_id:
        raise ValidationFailedError("Cannot remove project owner")

    result = await db.execute(
        delete(ProjectMember).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == member_user_id,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFoundError("Member not found in project")
    await db.commit()

    logger.info("User %s removed from project %s", member_user_id, project_id)

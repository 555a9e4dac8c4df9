"""
Project management API routes.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentUser, get_current_user
from api.middleware.rate_limit import get_rate_limit, limiter
from api.schemas.common import DetailResponse, Pagination
from api.schemas.project import (
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
from infrastructure.database.connection import get_db
from services import projects as project_service

router = APIRouter(prefix="/projects", tags=["Projects"])

UserDep = Annotated[CurrentUser, Depends(get_current_user)]
DbDep = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# Project CRUD
# =============================================================================


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    current_user: UserDep,
    db: DbDep,
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=255),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List projects the current user owns or is a member of."""
    page = await project_service.list_projects(
        db,
        current_user.id,
        status=status_filter,
        search=search,
        limit=limit,
        offset=offset,
    )
    projects = [
        ProjectResponse.model_validate(item.project).model_copy(
            update={
                "user_role": item.user_role,
                "conversation_count": item.conversation_count,
                "source_count": item.source_count,
            }
        )
        for item in page.items
    ]
    return ProjectListResponse(projects=projects, pagination=Pagination.from_page(page))


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("create_project"))
async def create_project(
    request: Request, body: ProjectCreate, current_user: UserDep, db: DbDep
):
    """
    Create a new project.

    The current user becomes the project owner.
    """
    project = await project_service.create_project(
        db,
        current_user.id,
        name=body.name,
        description=body.description,
        settings=body.settings,
    )
    return ProjectResponse.model_validate(project).model_copy(
        update={"user_role": "owner", "conversation_count": 0, "source_count": 0}
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: str, current_user: UserDep, db: DbDep):
    access = await project_service.get_project(db, project_id, current_user.id)
    return ProjectResponse.model_validate(access.project).model_copy(
        update={"user_role": access.role}
    )


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str, request: ProjectUpdate, current_user: UserDep, db: DbDep
):
    """Update project details. Requires owner or editor role."""
    project = await project_service.update_project(
        db, project_id, current_user.id, request.model_dump(exclude_unset=True)
    )
    return ProjectResponse.model_validate(project)


@router.delete("/{project_id}", response_model=DetailResponse)
async def delete_project(
    project_id: str,
    current_user: UserDep,
    db: DbDep,
    permanent: bool = Query(False, description="Remove rows instead of tombstoning them"),
):
    """
    Delete a project. Owner only.

    By default the project and everything in it is soft-deleted. With
    ``permanent=true`` the rows are removed and the database cascades the
    delete to members, conversations, messages and sources.
    """
    if permanent:
        await project_service.purge_project(db, project_id, current_user.id)
        return DetailResponse(detail="Project permanently deleted")

    await project_service.delete_project(db, project_id, current_user.id)
    return DetailResponse(detail="Project deleted")


@router.get("/{project_id}/stats", response_model=ProjectStatsResponse)
async def get_project_stats(project_id: str, current_user: UserDep, db: DbDep):
    stats = await project_service.get_project_stats(db, project_id, current_user.id)
    return ProjectStatsResponse(
        project_id=project_id,
        conversation_count=stats.conversation_count,
        message_count=stats.message_count,
        source_count=stats.source_count,
    )


# =============================================================================
# Members
# =============================================================================


@router.get("/{project_id}/members", response_model=ProjectMemberListResponse)
async def list_members(project_id: str, current_user: UserDep, db: DbDep):
    members = await project_service.list_members(db, project_id, current_user.id)
    return ProjectMemberListResponse(
        members=[ProjectMemberResponse.model_validate(m) for m in members],
        total=len(members),
    )


@router.post(
    "/{project_id}/members",
    response_model=ProjectMemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    project_id: str, request: ProjectMemberAdd, current_user: UserDep, db: DbDep
):
    """Add a user to the project. Owner only."""
    member = await project_service.add_member(
        db, project_id, current_user.id, request.user_id, request.role
    )
    return ProjectMemberResponse.model_validate(member)


@router.patch("/{project_id}/members/{member_user_id}", response_model=ProjectMemberResponse)
async def update_member_role(
    project_id: str,
    member_user_id: str,
    request: ProjectMemberUpdate,
    current_user: UserDep,
    db: DbDep,
):
    member = await project_service.update_member_role(
        db, project_id, current_user.id, member_user_id, request.role
    )
    return ProjectMemberResponse.model_validate(member)


@router.delete("/{project_id}/members/{member_user_id}", response_model=DetailResponse)
async def remove_member(
    project_id: str, member_user_id: str, current_user: UserDep, db: DbDep
):
    await project_service.remove_member(db, project_id, current_user.id, member_user_id)
    return DetailResponse(detail="Member removed")

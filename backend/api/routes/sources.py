"""
Source API routes.
"""

from typing import Annotated, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentUser, get_current_user
from api.middleware.rate_limit import get_rate_limit, limiter
from api.schemas.common import DetailResponse, Pagination
from api.schemas.source import (
    SourceCreate,
    SourceListResponse,
    SourceResponse,
    SourceStatsResponse,
    SourceUpdate,
)
from infrastructure.database.connection import get_db
from services import sources as source_service

router = APIRouter(prefix="/sources", tags=["Sources"])

UserDep = Annotated[CurrentUser, Depends(get_current_user)]
DbDep = Annotated[AsyncSession, Depends(get_db)]


@router.get("", response_model=SourceListResponse)
async def list_sources(
    current_user: UserDep,
    db: DbDep,
    project_id: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=255),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    page = await source_service.list_sources(
        db,
        current_user.id,
        project_id=project_id,
        source_type=type,
        search=search,
        limit=limit,
        offset=offset,
    )
    return SourceListResponse(
        sources=[SourceResponse.model_validate(s) for s in page.items],
        pagination=Pagination.from_page(page),
    )


@router.post("", response_model=SourceResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("create_source"))
async def create_source(
    request: Request, body: SourceCreate, current_user: UserDep, db: DbDep
):
    """Attach a source to a project. Requires owner or editor role."""
    source = await source_service.create_source(
        db,
        current_user.id,
        project_id=body.project_id,
        name=body.name,
        source_type=body.type,
        url=body.url,
        content=body.content,
        metadata=body.metadata,
    )
    return SourceResponse.model_validate(source)


@router.get("/projects/{project_id}/stats", response_model=SourceStatsResponse)
async def get_source_stats(project_id: str, current_user: UserDep, db: DbDep):
    stats = await source_service.get_source_stats(db, project_id, current_user.id)
    return SourceStatsResponse(
        project_id=project_id,
        total=stats.total,
        total_size_bytes=stats.total_size_bytes,
        by_type=stats.by_type,
    )


@router.get("/{source_id}", response_model=SourceResponse)
async def get_source(source_id: str, current_user: UserDep, db: DbDep):
    source = await source_service.get_source(db, source_id, current_user.id)
    return SourceResponse.model_validate(source)


@router.put("/{source_id}", response_model=SourceResponse)
async def update_source(
    source_id: str, request: SourceUpdate, current_user: UserDep, db: DbDep
):
    source = await source_service.update_source(
        db, source_id, current_user.id, request.model_dump(exclude_unset=True)
    )
    return SourceResponse.model_validate(source)


@router.delete("/{source_id}", response_model=DetailResponse)
async def delete_source(source_id: str, current_user: UserDep, db: DbDep):
    await source_service.delete_source(db, source_id, current_user.id)
    return DetailResponse(detail="Source deleted")


@router.get("/{source_id}/download")
async def download_source(source_id: str, current_user: UserDep, db: DbDep):
    """Serve a source's inline content as an attachment."""
    source = await source_service.download_source(db, source_id, current_user.id)
    filename = quote(source.name)
    return Response(
        content=source.content.encode("utf-8"),
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
    )

"""
Project and membership API schemas.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from infrastructure.database.models import ProjectMemberRole, ProjectStatus

from .common import Pagination

PROJECT_STATUSES = [s.value for s in ProjectStatus]
MEMBER_ROLES = [r.value for r in ProjectMemberRole]


# =============================================================================
# Project Schemas
# =============================================================================


class ProjectCreate(BaseModel):
    """Schema for creating a new project."""

    name: str = Field(..., min_length=1, max_length=255, description="Project name")
    description: Optional[str] = Field(None, max_length=5000, description="Project description")
    settings: Optional[dict] = Field(None, description="Project settings JSON")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Project name cannot be blank")
        return v.strip()


class ProjectUpdate(BaseModel):
    """Schema for updating a project."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[str] = Field(None, description="active, archived or completed")
    settings: Optional[dict] = Field(None, description="Project settings JSON")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PROJECT_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(PROJECT_STATUSES)}")
        return v


class ProjectResponse(BaseModel):
    """Schema for project response."""

    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    status: str
    settings: dict = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None

    # Caller-specific fields, filled in by the list/get endpoints
    user_role: Optional[str] = None
    conversation_count: Optional[int] = None
    source_count: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ProjectListResponse(BaseModel):
    """Paginated list of projects."""

    projects: List[ProjectResponse]
    pagination: Pagination


class ProjectStatsResponse(BaseModel):
    """Non-deleted row counts for a project."""

    project_id: str
    conversation_count: int
    message_count: int
    source_count: int


# =============================================================================
# Project Member Schemas
# =============================================================================


class _RoleMixin(BaseModel):
    @field_validator("role", check_fields=False)
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in MEMBER_ROLES:
            raise ValueError(f"Role must be one of: {', '.join(MEMBER_ROLES)}")
        return v


class ProjectMemberAdd(_RoleMixin):
    """Schema for adding a member to a project."""

    user_id: str = Field(..., min_length=1, max_length=255)
    role: str = Field(default=ProjectMemberRole.VIEWER.value, description="Project role")


class ProjectMemberUpdate(_RoleMixin):
    """Schema for updating a project member's role."""

    role: str = Field(..., description="New project role (owner, editor, viewer)")


class ProjectMemberResponse(BaseModel):
    """Schema for project member response."""

    id: str
    project_id: str
    user_id: str
    role: str
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectMemberListResponse(BaseModel):
    """List of project members."""

    members: List[ProjectMemberResponse]
    total: int

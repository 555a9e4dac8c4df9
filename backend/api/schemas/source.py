"""
Source API schemas.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from infrastructure.database.models import SourceType

from .common import Pagination

SOURCE_TYPES = [t.value for t in SourceType]


class SourceCreate(BaseModel):
    """Schema for adding a source to a project."""

    project_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    type: Optional[str] = Field(None, description="file, url, text, github, database or api")
    url: Optional[str] = Field(None, max_length=2048)
    content: Optional[str] = None
    metadata: Optional[dict] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in SOURCE_TYPES:
            raise ValueError(f"Type must be one of: {', '.join(SOURCE_TYPES)}")
        return v


class SourceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = None
    url: Optional[str] = Field(None, max_length=2048)
    content: Optional[str] = None
    metadata: Optional[dict] = None


class SourceResponse(BaseModel):
    id: str
    project_id: str
    user_id: str
    name: str
    type: Optional[str] = None
    url: Optional[str] = None
    content: Optional[str] = None
    size_bytes: int = 0
    metadata: dict = Field(default_factory=dict, validation_alias=AliasChoices("meta", "metadata"))
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SourceListResponse(BaseModel):
    sources: List[SourceResponse]
    pagination: Pagination


class SourceStatsResponse(BaseModel):
    project_id: str
    total: int
    total_size_bytes: int
    by_type: Dict[str, int]

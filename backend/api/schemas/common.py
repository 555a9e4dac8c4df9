"""
Shared schema pieces.
"""

from pydantic import BaseModel

from infrastructure.database.queries import Page


class Pagination(BaseModel):
    """Offset pagination block returned with every list response."""

    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def from_page(cls, page: Page) -> "Pagination":
        return cls(total=page.total, limit=page.limit, offset=page.offset, has_more=page.has_more)


class DetailResponse(BaseModel):
    """Plain acknowledgement."""

    detail: str

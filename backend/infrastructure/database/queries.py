"""
Shared query helpers: LIKE escaping and offset pagination.
"""

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards for safe use in SQL LIKE/ILIKE patterns."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(value: str) -> str:
    """Build a ``%value%`` pattern with wildcards in *value* escaped."""
    return f"%{escape_like(value)}%"


@dataclass
class Page(Generic[T]):
    """One page of an offset-paginated listing."""

    items: list[T] = field(default_factory=list)
    total: int = 0
    limit: int = 20
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total

"""Async engine, session factory and declarative base."""
from typing import AsyncGenerator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from ..config import get_settings

settings = get_settings()

# idx_<table>_<column>, matching the hand-written SQL migrations
NAMING_CONVENTION = {"ix": "idx_%(table_name)s_%(column_0_name)s"}


def _pool_options(database_url: str) -> dict:
    # SQLite uses a static/singleton pool and rejects sizing arguments
    if database_url.startswith("sqlite"):
        return {}
    options = {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": 10,
        "pool_recycle": 3600,
    }
    if settings.is_production:
        options["connect_args"] = {"ssl": "require"}
    return options


def build_engine(database_url: str, **overrides) -> AsyncEngine:
    """Engine for ``database_url``; used by the app and by the migrate CLI."""
    options = {"echo": settings.database_echo, "pool_pre_ping": True}
    options.update(_pool_options(database_url))
    options.update(overrides)
    return create_async_engine(database_url, **options)


engine = build_engine(settings.database_url)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Services commit explicitly; anything that escapes the handler
    rolls the session back before it is closed.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing workspace tables; development only."""
    from . import models  # noqa: F401  registers the tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()

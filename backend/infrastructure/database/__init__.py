"""Database access for the workspace: engine, sessions and ORM models."""
from .connection import Base, async_session_maker, build_engine, close_db, engine, get_db, init_db

__all__ = [
    "Base",
    "async_session_maker",
    "build_engine",
    "close_db",
    "engine",
    "get_db",
    "init_db",
]

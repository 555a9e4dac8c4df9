"""
Pytest configuration and shared fixtures for backend tests.
"""

import sys
from pathlib import Path

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from typing import AsyncGenerator
from uuid import uuid4

from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import after path is set
from api.dependencies import CurrentUser, token_service
from infrastructure.database.connection import get_db
from infrastructure.database.models import Base, Project, ProjectMember
from services import projects as project_service


# Database URL for testing (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless this is on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


@pytest.fixture
async def db_engine():
    """Create a test database engine with the workspace schema."""
    engine = make_test_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def empty_engine():
    """A test engine with no tables, for the migration runner."""
    engine = make_test_engine()
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


# ============================================================================
# Users and auth
# ============================================================================


def _headers_for(user: CurrentUser) -> dict:
    token = token_service.create_access_token(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_user() -> CurrentUser:
    return CurrentUser(id=str(uuid4()), email="owner@example.com")


@pytest.fixture
def other_user() -> CurrentUser:
    return CurrentUser(id=str(uuid4()), email="other@example.com")


@pytest.fixture
def third_user() -> CurrentUser:
    return CurrentUser(id=str(uuid4()), email="third@example.com")


@pytest.fixture
def auth_headers(test_user: CurrentUser) -> dict:
    """Authentication headers for the project owner."""
    return _headers_for(test_user)


@pytest.fixture
def other_auth_headers(other_user: CurrentUser) -> dict:
    return _headers_for(other_user)


@pytest.fixture
def third_auth_headers(third_user: CurrentUser) -> dict:
    return _headers_for(third_user)


# ============================================================================
# Workspace data
# ============================================================================


@pytest.fixture
async def test_project(db_session: AsyncSession, test_user: CurrentUser) -> Project:
    """A project owned by test_user."""
    return await project_service.create_project(
        db_session, test_user.id, name="Test Project", description="A project for tests"
    )


async def add_member(db: AsyncSession, project: Project, user: CurrentUser, role: str) -> ProjectMember:
    return await project_service.add_member(db, project.id, project.owner_id, user.id, role)


@pytest.fixture
async def editor_member(
    db_session: AsyncSession, test_project: Project, other_user: CurrentUser
) -> ProjectMember:
    """other_user joins test_project as editor."""
    return await add_member(db_session, test_project, other_user, "editor")


@pytest.fixture
async def viewer_member(
    db_session: AsyncSession, test_project: Project, third_user: CurrentUser
) -> ProjectMember:
    """third_user joins test_project as viewer."""
    return await add_member(db_session, test_project, third_user, "viewer")


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    # Import app here to avoid circular imports
    from main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    # Reset rate limiter state between tests to prevent cross-test 429s
    if hasattr(app.state, "limiter"):
        app.state.limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

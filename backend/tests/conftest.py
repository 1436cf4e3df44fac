"""Shared test fixtures for the Profily backend."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Environment, Settings
from db.models import Base
from db.repository import DocumentRepository
from services.github_service import GitHubRepository, GitHubUser
from services.tech_mappings import FrameworkMappings, load_framework_mappings

TEST_TOKEN = "gho_test_token_fake_value"


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        environment=Environment.TESTING,
        debug=True,
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/15",
        cors_origins=["http://localhost:3000"],
        github_max_retries=2,
    )


@pytest.fixture
async def fake_redis() -> AsyncGenerator:
    """Provide a fake Redis instance for testing."""
    server = fakeredis.FakeServer()
    redis = fakeredis.aioredis.FakeRedis(server=server)
    yield redis
    await redis.aclose()


@pytest.fixture(scope="session")
def mappings() -> FrameworkMappings:
    """The bundled mapping table."""
    return load_framework_mappings()


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite database with the document table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def document_repository(session_factory) -> DocumentRepository:
    return DocumentRepository(session_factory)


def make_repo(
    name: str,
    *,
    size: int = 100,
    pushed_at: str | None = "2026-01-15T12:00:00Z",
    is_fork: bool = False,
    topics: list[str] | None = None,
    owner: str = "testuser",
) -> GitHubRepository:
    """Build a repository model the way the gateway returns it."""
    return GitHubRepository(
        id=abs(hash(name)) % 10_000_000,
        name=name,
        full_name=f"{owner}/{name}",
        owner=owner,
        html_url=f"https://github.com/{owner}/{name}",
        size=size,
        is_fork=is_fork,
        topics=topics or [],
        pushed_at=pushed_at,
    )


@pytest.fixture
def github_user() -> GitHubUser:
    return GitHubUser(id=4242, login="testuser", followers=10, following=2)


@pytest.fixture
def mock_github_service(github_user):
    """Provide a mocked GitHub service."""
    service = AsyncMock()
    service.get_authenticated_user.return_value = github_user
    service.get_user_repositories.return_value = []
    service.get_repository_languages.return_value = []
    service.get_repo_file_tree.return_value = []
    service.get_file_content.return_value = None
    return service


@pytest.fixture
async def app(test_settings):
    """Create a test application instance."""
    from app.main import create_app

    application = create_app()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator:
    """Provide an async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def repo_factory():
    return make_repo

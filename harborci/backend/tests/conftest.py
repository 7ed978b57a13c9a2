"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""

import os
import tempfile

# Settings are read at import time, so the environment must be in place first
_TEST_DIR = tempfile.mkdtemp(prefix="harborci-tests-")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{_TEST_DIR}/harborci-test.db"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["MASTER_ENCRYPTION_KEY"] = "test-master-key"
os.environ["GITHUB_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["GITLAB_SERVER_PEPPER"] = "test-pepper"
os.environ["GITLAB_CLIENT_ID"] = "gitlab-client"
os.environ["GITLAB_CLIENT_SECRET"] = "gitlab-client-secret"
os.environ["BASE_URL"] = "http://harbor.test"
os.environ["API_TOKEN"] = ""
os.environ["SETUP_CALLBACK_POLL_SECONDS"] = "0.02"
os.environ["SETUP_CALLBACK_WAIT_SECONDS"] = "5"

import pytest
from typing import AsyncGenerator, List, Tuple
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.core.config import settings
from app.db.base import Base
from app.db.session import get_db
from app.db.models import Repository
from app.services.signature_verifier import hash_gitlab_token
from payloads import GITLAB_WEBHOOK_TOKEN

# Create test engine
test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create clean database for each test"""

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_factory():
    """Independent sessions, for tests that race two callers"""
    return TestSessionLocal


@pytest.fixture
def enqueued(monkeypatch) -> List[Tuple[str, str]]:
    """Capture webhook enqueues instead of talking to the broker"""
    calls: List[Tuple[str, str]] = []
    monkeypatch.setattr(
        "app.services.webhook_ingestion.default_enqueue",
        lambda event_id, repository_key: calls.append((event_id, repository_key)),
    )
    return calls


@pytest.fixture
def reconcile_requests(monkeypatch) -> List[Tuple[str, str]]:
    calls: List[Tuple[str, str]] = []
    monkeypatch.setattr(
        "app.services.event_processor.default_enqueue_reconcile",
        lambda provider, account_ref: calls.append((provider, account_ref)),
    )
    return calls


@pytest.fixture(scope="function")
def client(db_session: AsyncSession, enqueued) -> TestClient:
    """Create test client with database override"""

    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
async def github_repo(db_session: AsyncSession) -> Repository:
    repo = Repository(
        provider="github",
        provider_repo_id="1001",
        owner="acme",
        name="widgets",
        default_branch="main",
        is_active=True,
    )
    db_session.add(repo)
    await db_session.commit()
    return repo


@pytest.fixture
async def gitlab_repo(db_session: AsyncSession) -> Repository:
    repo = Repository(
        provider="gitlab",
        provider_repo_id="2002",
        owner="acme/platform",
        name="api",
        default_branch="develop",
        webhook_token_hmac=hash_gitlab_token(settings.GITLAB_SERVER_PEPPER, GITLAB_WEBHOOK_TOKEN),
        is_active=True,
    )
    db_session.add(repo)
    await db_session.commit()
    return repo

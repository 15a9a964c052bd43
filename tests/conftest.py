from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import settings

# Override settings for tests
settings.database_url = "sqlite+aiosqlite://"
settings.jwt_secret_key = "test-secret-key-that-is-at-least-32-bytes-long"
settings.app_env = "test"
settings.job_runner = "inline"
settings.inter_query_delay_seconds = 0.0
settings.azure_openai_api_key = "azure-test-secret-key"
settings.gemini_api_key = "gemini-test-secret-key"
settings.perplexity_api_key = "pplx-test-secret-key"

from app.core.dependencies import get_job_runner  # noqa: E402
from app.core.rate_limit import limiter  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.postgres import get_db  # noqa: E402
from app.gateway.types import ProviderResult  # noqa: E402
from app.jobs.runner import JobRunner  # noqa: E402
from app.jobs.types import BrandSnapshot, JobPayload, QueryItem  # noqa: E402
from app.main import app  # noqa: E402
from app.models.brand import Brand  # noqa: E402
from app.models.user import User  # noqa: E402

limiter.enabled = False

TIMESTAMP = "2026-01-01T00:00:00+00:00"


class RecordingRunner(JobRunner):
    """Accepts jobs without running them."""

    def __init__(self):
        self.submitted: list[JobPayload] = []

    async def submit(self, payload: JobPayload) -> None:
        self.submitted.append(payload)


class FakeDispatcher:
    """Stands in for QueryDispatcher: canned answers, optional per-query failures."""

    def __init__(self, answers: dict[str, str] | None = None, fail_on: set[str] | None = None):
        self.answers = answers or {
            "chatgpt": "Acme is a popular choice. See https://acme.com for details.",
            "gemini": "Top options include Acme and Globex.",
            "perplexity": "",
        }
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    async def dispatch(self, query: QueryItem, brand: BrandSnapshot) -> dict[str, ProviderResult]:
        self.calls.append(query.query)
        if query.query in self.fail_on:
            raise RuntimeError(f"dispatch failed for {query.query}")
        results = {}
        for provider, text in self.answers.items():
            if text:
                results[provider] = ProviderResult(response=text, timestamp=TIMESTAMP, response_time=5, citations=[])
            else:
                results[provider] = ProviderResult(response="", timestamp=TIMESTAMP, error="Perplexity API error 500")
        return results


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database per test; StaticPool keeps one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
async def client(session_factory, runner) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_job_runner] = lambda: runner

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
async def user(db: AsyncSession) -> User:
    user = User(id="user-1", email="owner@example.com", display_name="Owner", credits=100)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin(db: AsyncSession) -> User:
    admin = User(id="admin-1", email="admin@example.com", display_name="Admin", credits=0, is_admin=True)
    db.add(admin)
    await db.commit()
    return admin


@pytest.fixture
async def brand(db: AsyncSession, user: User) -> Brand:
    brand = Brand(
        id="brand-1",
        user_id=user.id,
        company_name="Acme",
        domain="acme.com",
        competitors=["Globex", {"name": "Initech", "domain": "initech.com", "aliases": ["Initech Corp"]}],
        queries=[
            {"query": "best crm", "keyword": "crm", "category": "software"},
            {"query": "cheap crm", "keyword": "crm", "category": "software"},
        ],
        total_queries=2,
        query_processing_results=[],
    )
    db.add(brand)
    await db.commit()
    return brand


def _auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    return _auth(user)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return _auth(admin)


@pytest.fixture
def make_dispatcher():
    return FakeDispatcher

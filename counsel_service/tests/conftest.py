"""Pytest fixtures for chat service tests."""

from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from counsel_service.ai_client import get_completion_client
from counsel_service.app import app
from counsel_service.auth import current_user
from counsel_service.database import build_engine, create_db_and_tables, get_async_session
from counsel_service.models.chat_session import ChatSession
from counsel_service.models.message import Message, MessageRole
from counsel_service.models.user import User
from counsel_service.rate_limit import (
    RateLimiter,
    ScopedRateLimiters,
    client_identity,
    enforce_rate_limit,
    get_scoped_rate_limiters,
)
from counsel_service.tests.mocks.mock_completion import MockCompletionClient


class FakeClock:
    """Manually advanced clock for the rate limiter."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite engine on a fresh database file with all tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'counsel.db'}")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Database session for service-level tests."""
    async with session_maker() as session:
        yield session


async def _make_user(db: AsyncSession, name: str) -> User:
    user = User(
        id=uuid4(),
        email=f"{name}@example.com",
        hashed_password="not-a-real-hash",
        is_active=True,
        is_superuser=False,
        is_verified=True,
        full_name=name.title(),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def alice(db: AsyncSession) -> User:
    """Owner of the test sessions."""
    return await _make_user(db, "alice")


@pytest.fixture
async def bob(db: AsyncSession) -> User:
    """A second user who owns nothing of alice's."""
    return await _make_user(db, "bob")


@pytest.fixture
async def chat(db: AsyncSession, alice: User) -> ChatSession:
    """Empty chat session owned by alice."""
    session = ChatSession(user_id=alice.id, title="Career change")
    db.add(session)
    await db.commit()
    await db.refresh(session)
    return session


@pytest.fixture
def add_message(db: AsyncSession, chat: ChatSession):
    """Insert a message into ``chat`` without going through the services."""

    async def _add(content: str, role: MessageRole = MessageRole.USER) -> Message:
        message = Message(session_id=chat.id, role=role, content=content)
        db.add(message)
        await db.commit()
        await db.refresh(message)
        return message

    return _add


@pytest.fixture
def completion_client() -> MockCompletionClient:
    """Scripted completion client."""
    return MockCompletionClient()


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at an arbitrary monotonic time."""
    return FakeClock()


@pytest.fixture
def rate_limiter(clock: FakeClock) -> RateLimiter:
    """Limiter with a tiny budget so tests can exhaust it."""
    return RateLimiter(window_seconds=60, max_requests=10, clock=clock)


@pytest.fixture
def scoped_limiters(clock: FakeClock) -> ScopedRateLimiters:
    """Per-user operation budgets on the fake clock."""
    return ScopedRateLimiters(
        message=RateLimiter(window_seconds=60, max_requests=10, clock=clock),
        session=RateLimiter(window_seconds=60, max_requests=5, clock=clock),
        search=RateLimiter(window_seconds=60, max_requests=20, clock=clock),
    )


@pytest.fixture
async def client(
    session_maker,
    alice: User,
    completion_client: MockCompletionClient,
    rate_limiter: RateLimiter,
    scoped_limiters: ScopedRateLimiters,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client authenticated as alice, backed by the test database."""

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    async def override_rate_limit(request: Request) -> None:
        rate_limiter.check_limit(client_identity(request))

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[current_user] = lambda: alice
    app.dependency_overrides[get_completion_client] = lambda: completion_client
    app.dependency_overrides[enforce_rate_limit] = override_rate_limit
    app.dependency_overrides[get_scoped_rate_limiters] = lambda: scoped_limiters

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as http_client:
        yield http_client

    app.dependency_overrides.clear()

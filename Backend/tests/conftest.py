import uuid
from collections.abc import AsyncGenerator
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from focusapp.database import get_db, get_session_factory
from focusapp.dependencies import get_current_user
from focusapp.errors import InvalidStateError, NotFoundError, StorageError
from focusapp.main import app
from focusapp.models import Base
from focusapp.models.user import User
from focusapp.services.auth_service import hash_password
from focusapp.services.clock import FixedClock
from focusapp.services.session_controller import ControllerRegistry
from focusapp.services.session_store import SessionRecord

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# A Wednesday; with Monday-first weeks the week is 2026-10-12 .. 2026-10-18.
NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)


class InMemorySessionStore:
    """Dict-backed SessionStore. Operations named in `failing` raise StorageError."""

    def __init__(self):
        self.records: dict[uuid.UUID, SessionRecord] = {}
        self.failing: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise StorageError(f"{operation} unavailable")

    async def insert(self, record: SessionRecord) -> uuid.UUID:
        self._check("insert")
        session_id = uuid.uuid4()
        self.records[session_id] = replace(record, id=session_id)
        return session_id

    async def update(self, record: SessionRecord) -> None:
        self._check("update")
        if record.id not in self.records:
            raise NotFoundError(f"Session {record.id} not found")
        if self.records[record.id].end_time is not None:
            raise InvalidStateError("Session already ended")
        self.records[record.id] = record

    async def get_by_id(self, session_id: uuid.UUID) -> SessionRecord | None:
        self._check("get_by_id")
        return self.records.get(session_id)

    async def get_active(self) -> SessionRecord | None:
        self._check("get_active")
        active = [r for r in self.records.values() if r.end_time is None]
        return max(active, key=lambda r: r.start_time, default=None)

    async def query_range(self, start: datetime, end: datetime) -> list[SessionRecord]:
        self._check("query_range")
        return [r for r in self.records.values() if start <= r.start_time < end]

    async def clear(self) -> int:
        self._check("clear")
        count = len(self.records)
        self.records.clear()
        return count

    def add(self, start_time: datetime, duration_seconds: int | None = None, is_break: bool = False) -> SessionRecord:
        """Seed a record directly; a duration makes it a finished session."""
        end_time = None
        if duration_seconds is not None:
            end_time = start_time + timedelta(seconds=duration_seconds)
        record = SessionRecord(
            id=uuid.uuid4(),
            start_time=start_time,
            end_time=end_time,
            duration_seconds=duration_seconds,
            is_break=is_break,
        )
        self.records[record.id] = record
        return record


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


async def _make_user(db_session: AsyncSession, username: str) -> User:
    user = User(
        id=uuid.uuid4(),
        username=username,
        password_hash=hash_password("correct horse battery"),
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "focus_tester")


@pytest.fixture
async def second_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "other_tester")


def _install_app_overrides(session_factory, clock: FixedClock) -> None:
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.clock = clock
    app.state.controllers = ControllerRegistry()


@pytest.fixture
async def client(session_factory, clock: FixedClock, test_user: User) -> AsyncGenerator[AsyncClient, None]:
    _install_app_overrides(session_factory, clock)

    async def override_get_current_user():
        return test_user

    app.dependency_overrides[get_current_user] = override_get_current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def anon_client(session_factory, clock: FixedClock) -> AsyncGenerator[AsyncClient, None]:
    """Client that goes through real bearer-token authentication."""
    _install_app_overrides(session_factory, clock)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

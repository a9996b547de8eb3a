"""Session records and the storage contract the lifecycle core depends on."""
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from focusapp.errors import NotFoundError, StorageError
from focusapp.services import session_service
from focusapp.services.session_service import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    start_time: datetime
    is_break: bool = False
    end_time: datetime | None = None
    duration_seconds: int | None = None
    id: uuid.UUID | None = None

    def __post_init__(self):
        if (self.end_time is None) != (self.duration_seconds is None):
            raise ValueError("end_time and duration_seconds must be set together")
        if self.duration_seconds is not None and self.duration_seconds < 0:
            raise ValueError("duration_seconds must be >= 0")

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @property
    def is_completed_work(self) -> bool:
        """Counts toward statistics: ended and not a break."""
        return self.end_time is not None and not self.is_break

    @classmethod
    def from_row(cls, row) -> "SessionRecord":
        return cls(
            id=row.id,
            start_time=as_utc(row.start_time),
            end_time=as_utc(row.end_time),
            duration_seconds=row.duration_seconds,
            is_break=bool(row.is_break),
        )


class SessionStore(Protocol):
    async def insert(self, record: SessionRecord) -> uuid.UUID: ...

    async def update(self, record: SessionRecord) -> None: ...

    async def get_by_id(self, session_id: uuid.UUID) -> SessionRecord | None: ...

    async def get_active(self) -> SessionRecord | None: ...

    async def query_range(self, start: datetime, end: datetime) -> list[SessionRecord]: ...

    async def clear(self) -> int: ...


class SqlSessionStore:
    """SessionStore over the working_sessions table, scoped to one user.

    Each call runs in its own short transaction, so every operation is atomic
    for the single record it touches and nothing is held open between calls.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], user_id: uuid.UUID):
        self._session_factory = session_factory
        self.user_id = user_id

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as db:
                try:
                    yield db
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Session store unavailable for user %s: %s", self.user_id, exc)
            raise StorageError(str(exc)) from exc

    async def insert(self, record: SessionRecord) -> uuid.UUID:
        async with self._transaction() as db:
            row = await session_service.create_session(
                db,
                self.user_id,
                {
                    "start_time": record.start_time,
                    "end_time": record.end_time,
                    "duration_seconds": record.duration_seconds,
                    "is_break": record.is_break,
                },
            )
            return row.id

    async def update(self, record: SessionRecord) -> None:
        if record.id is None:
            raise NotFoundError("Cannot update a session that was never stored")
        async with self._transaction() as db:
            row = await session_service.update_session(
                db,
                self.user_id,
                record.id,
                {"end_time": record.end_time, "duration_seconds": record.duration_seconds},
            )
            if row is None:
                raise NotFoundError(f"Session {record.id} not found")

    async def get_by_id(self, session_id: uuid.UUID) -> SessionRecord | None:
        async with self._transaction() as db:
            row = await session_service.get_session(db, self.user_id, session_id)
            return SessionRecord.from_row(row) if row else None

    async def get_active(self) -> SessionRecord | None:
        async with self._transaction() as db:
            row = await session_service.get_open_session(db, self.user_id)
            return SessionRecord.from_row(row) if row else None

    async def query_range(self, start: datetime, end: datetime) -> list[SessionRecord]:
        async with self._transaction() as db:
            rows = await session_service.get_sessions(
                db, self.user_id, limit=None, start_date=start, end_date=end
            )
            return [SessionRecord.from_row(row) for row in rows]

    async def clear(self) -> int:
        async with self._transaction() as db:
            return await session_service.delete_sessions(db, self.user_id)

import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusapp.errors import AlreadyActiveError, InvalidStateError
from focusapp.models.working_session import WorkingSession


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to aware UTC. SQLite hands back naive values stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def get_sessions(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int | None = 50,
    offset: int = 0,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[WorkingSession]:
    """Sessions whose start_time lies in [start_date, end_date), newest first."""
    query = select(WorkingSession).where(WorkingSession.user_id == user_id)
    if start_date:
        query = query.where(WorkingSession.start_time >= as_utc(start_date))
    if end_date:
        query = query.where(WorkingSession.start_time < as_utc(end_date))
    query = query.order_by(WorkingSession.start_time.desc()).offset(offset)
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_session(
    db: AsyncSession, user_id: uuid.UUID, session_id: uuid.UUID
) -> WorkingSession | None:
    result = await db.execute(
        select(WorkingSession).where(
            WorkingSession.id == session_id, WorkingSession.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


async def get_open_session(db: AsyncSession, user_id: uuid.UUID) -> WorkingSession | None:
    """Most recent session that has not been ended yet."""
    result = await db.execute(
        select(WorkingSession)
        .where(WorkingSession.user_id == user_id, WorkingSession.end_time.is_(None))
        .order_by(WorkingSession.start_time.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_session(db: AsyncSession, user_id: uuid.UUID, data: dict) -> WorkingSession:
    if data.get("end_time") is None and await get_open_session(db, user_id) is not None:
        raise AlreadyActiveError("Another session is still active")

    data = dict(data)
    data.pop("id", None)
    data["start_time"] = as_utc(data["start_time"])
    data["end_time"] = as_utc(data.get("end_time"))

    session = WorkingSession(user_id=user_id, **data)
    db.add(session)
    await db.flush()
    await db.refresh(session)
    return session


async def update_session(
    db: AsyncSession, user_id: uuid.UUID, session_id: uuid.UUID, data: dict
) -> WorkingSession | None:
    session = await get_session(db, user_id, session_id)
    if session is None:
        return None
    if session.end_time is not None:
        raise InvalidStateError("Session already ended")

    for key, value in data.items():
        if value is not None:
            if isinstance(value, datetime):
                value = as_utc(value)
            setattr(session, key, value)
    session.updated_at = datetime.now(timezone.utc)

    await db.flush()
    await db.refresh(session)
    return session


async def delete_sessions(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        delete(WorkingSession).where(WorkingSession.user_id == user_id)
    )
    return result.rowcount or 0

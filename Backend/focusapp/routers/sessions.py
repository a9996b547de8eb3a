import asyncio
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from focusapp.config import settings
from focusapp.database import get_db
from focusapp.dependencies import (
    get_controller_registry,
    get_current_user,
    get_session_controller,
    get_session_store,
)
from focusapp.models.user import User
from focusapp.schemas.session import (
    ActiveSessionResponse,
    ClearResponse,
    SessionCreate,
    SessionResponse,
    SessionStart,
    SessionUpdate,
)
from focusapp.services import session_service
from focusapp.services.session_controller import (
    ControllerRegistry,
    ControllerSnapshot,
    SessionController,
)
from focusapp.services.session_store import SessionRecord, SqlSessionStore
from focusapp.services.ticker import ACTIVE_STATES, ElapsedTicker

router = APIRouter(prefix="/sessions", tags=["sessions"])


# --- Lifecycle ---


@router.post("/start", response_model=SessionResponse, status_code=201)
async def start_session(
    data: SessionStart | None = None,
    controller: SessionController = Depends(get_session_controller),
):
    """Start a work session, or a break session with is_break=true."""
    return await controller.start(is_break=data.is_break if data else False)


@router.post("/break", response_model=ActiveSessionResponse)
async def toggle_break(controller: SessionController = Depends(get_session_controller)):
    """Pause the running work session for a break, or resume it."""
    controller.toggle_break()
    return controller.snapshot()


@router.post("/end", response_model=SessionResponse)
async def end_session(controller: SessionController = Depends(get_session_controller)):
    return await controller.end()


@router.get("/active", response_model=ActiveSessionResponse)
async def active_session(controller: SessionController = Depends(get_session_controller)):
    """Lifecycle state and elapsed active seconds, for the timer display."""
    return controller.snapshot()


@router.get("/active/stream")
async def stream_active_session(controller: SessionController = Depends(get_session_controller)):
    """Server-sent events carrying the timer snapshot every TICK_INTERVAL_SECONDS.

    The stream closes after the first snapshot that is neither running nor on
    break, so an idle or ended controller yields exactly one event.
    """
    queue: asyncio.Queue[ControllerSnapshot] = asyncio.Queue()
    ticker = ElapsedTicker(controller, queue.put_nowait, interval=settings.TICK_INTERVAL_SECONDS)

    async def events():
        ticker.start()
        try:
            while True:
                snapshot = await queue.get()
                payload = ActiveSessionResponse.model_validate(snapshot).model_dump_json()
                yield f"data: {payload}\n\n"
                if snapshot.state not in ACTIVE_STATES:
                    break
        finally:
            await ticker.stop()

    return StreamingResponse(events(), media_type="text/event-stream")


# --- Records ---


@router.get("", response_model=list[SessionResponse])
async def list_sessions(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    sessions = await session_service.get_sessions(
        db, user.id, limit=limit, offset=offset,
        start_date=start_date, end_date=end_date,
    )
    return [SessionRecord.from_row(s) for s in sessions]


@router.get("/open", response_model=SessionResponse)
async def open_session(store: SqlSessionStore = Depends(get_session_store)):
    session = await store.get_active()
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No active session"
        )
    return session


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: uuid.UUID,
    store: SqlSessionStore = Depends(get_session_store),
):
    session = await store.get_by_id(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Session not found"
        )
    return session


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    data: SessionCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    registry: ControllerRegistry = Depends(get_controller_registry),
):
    """Store a record written by another client (remote sync)."""
    session = await session_service.create_session(db, user.id, data.model_dump())
    registry.discard(user.id)
    return SessionRecord.from_row(session)


@router.patch("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: uuid.UUID,
    data: SessionUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    registry: ControllerRegistry = Depends(get_controller_registry),
):
    """Finalize a record written by another client (remote sync)."""
    existing = await session_service.get_session(db, user.id, session_id)
    if existing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Session not found"
        )
    if session_service.as_utc(data.end_time) < session_service.as_utc(existing.start_time):
        raise ValueError("end_time must not be before start_time")

    session = await session_service.update_session(db, user.id, session_id, data.model_dump())
    registry.discard(user.id)
    return SessionRecord.from_row(session)


@router.delete("", response_model=ClearResponse)
async def clear_sessions(
    user: User = Depends(get_current_user),
    store: SqlSessionStore = Depends(get_session_store),
    registry: ControllerRegistry = Depends(get_controller_registry),
):
    """Delete the whole session history of the current user."""
    deleted = await store.clear()
    registry.discard(user.id)
    return ClearResponse(deleted=deleted)

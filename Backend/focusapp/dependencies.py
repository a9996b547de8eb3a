from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from focusapp.config import settings
from focusapp.database import get_db, get_session_factory
from focusapp.models.user import User
from focusapp.services import auth_service
from focusapp.services.clock import Clock, SystemClock
from focusapp.services.session_controller import ControllerRegistry, SessionController
from focusapp.services.session_store import SqlSessionStore
from focusapp.services.stats_service import StatsAggregator

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        user_id = auth_service.decode_access_token(credentials.credentials)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_clock(request: Request) -> Clock:
    clock = getattr(request.app.state, "clock", None)
    if clock is None:
        clock = SystemClock(settings.TIMEZONE, settings.FIRST_DAY_OF_WEEK)
        request.app.state.clock = clock
    return clock


def get_controller_registry(request: Request) -> ControllerRegistry:
    registry = getattr(request.app.state, "controllers", None)
    if registry is None:
        registry = ControllerRegistry()
        request.app.state.controllers = registry
    return registry


def get_session_store(
    user: User = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SqlSessionStore:
    return SqlSessionStore(session_factory, user.id)


async def get_session_controller(
    user: User = Depends(get_current_user),
    store: SqlSessionStore = Depends(get_session_store),
    clock: Clock = Depends(get_clock),
    registry: ControllerRegistry = Depends(get_controller_registry),
) -> SessionController:
    return await registry.get(user.id, lambda: SessionController(store, clock))


def get_stats_aggregator(
    store: SqlSessionStore = Depends(get_session_store),
    clock: Clock = Depends(get_clock),
) -> StatsAggregator:
    return StatsAggregator(store, clock)

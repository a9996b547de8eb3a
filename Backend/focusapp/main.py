import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI
from sqlalchemy import text

from focusapp.config import settings
from focusapp.database import engine
from focusapp.services.clock import SystemClock
from focusapp.services.session_controller import ControllerRegistry

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Initialize Sentry
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=0.2 if settings.ENVIRONMENT == "production" else 1.0,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: verify DB connection
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))

    app.state.clock = SystemClock(settings.TIMEZONE, settings.FIRST_DAY_OF_WEEK)
    app.state.controllers = ControllerRegistry()

    yield

    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="Focus API",
    version="0.1.0",
    lifespan=lifespan,
)

from focusapp.middleware.error_handler import register_error_handlers  # noqa: E402

register_error_handlers(app)

# Routers
from focusapp.routers.auth import router as auth_router  # noqa: E402
from focusapp.routers.sessions import router as sessions_router  # noqa: E402
from focusapp.routers.stats import router as stats_router  # noqa: E402

app.include_router(auth_router)
app.include_router(sessions_router)
app.include_router(stats_router)


@app.get("/health")
async def health():
    return {"status": "ok"}

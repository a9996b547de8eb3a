"""Periodic sampling of the active session for display.

The ticker only reads. Stopping it never ends the session, and starting a new
ticker on a session that is still running picks up the same elapsed time,
since that is always derived from the stored start time and the in-memory
break ledger.
"""
import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable

from focusapp.services.session_controller import ControllerSnapshot, LifecycleState, SessionController

logger = logging.getLogger(__name__)

TickCallback = Callable[[ControllerSnapshot], Awaitable[None] | None]

ACTIVE_STATES = (LifecycleState.RUNNING, LifecycleState.ON_BREAK)


class ElapsedTicker:
    def __init__(self, controller: SessionController, callback: TickCallback, interval: float = 1.0):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.controller = controller
        self.callback = callback
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def wait(self) -> None:
        """Block until the ticker finishes on its own (the session ended)."""
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        while True:
            snapshot = self.controller.snapshot()
            try:
                result = self.callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Tick callback failed")

            if snapshot.state not in ACTIVE_STATES:
                break
            await asyncio.sleep(self.interval)

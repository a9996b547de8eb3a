"""Lifecycle of the single active focus session.

A controller owns at most one active session. Break accounting lives only in
memory: it is an immutable ``BreakLedger`` replaced wholesale on every
transition, and the reference to it is swapped under a lock so a display tick
never sees half of a toggle.
"""
import asyncio
import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

from focusapp.errors import AlreadyActiveError, InvalidStateError, NoActiveSessionError
from focusapp.services.clock import Clock
from focusapp.services.session_store import SessionRecord, SessionStore

logger = logging.getLogger(__name__)

ONE_SECOND = timedelta(seconds=1)


class LifecycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    ON_BREAK = "on_break"
    ENDED = "ended"


@dataclass(frozen=True)
class BreakLedger:
    on_break: bool = False
    break_started_at: datetime | None = None
    total_break: timedelta = timedelta(0)

    def enter(self, now: datetime) -> "BreakLedger":
        return BreakLedger(on_break=True, break_started_at=now, total_break=self.total_break)

    def leave(self, now: datetime) -> "BreakLedger":
        return BreakLedger(total_break=self.total_break + (now - self.break_started_at))

    def closed(self, now: datetime) -> "BreakLedger":
        return self.leave(now) if self.on_break else self

    def break_time(self, now: datetime) -> timedelta:
        """Completed breaks plus the one still open, if any."""
        if self.on_break:
            return self.total_break + (now - self.break_started_at)
        return self.total_break


@dataclass(frozen=True)
class ControllerSnapshot:
    state: LifecycleState
    session: SessionRecord | None
    elapsed_seconds: int
    on_break: bool
    break_seconds: int


def net_active_seconds(start: datetime, now: datetime, break_time: timedelta) -> int:
    """Whole seconds of wall clock time since start that were not spent on break."""
    return max(0, (now - start - break_time) // ONE_SECOND)


class SessionController:
    def __init__(self, store: SessionStore, clock: Clock):
        self.store = store
        self.clock = clock
        # guards _session, _ledger, _state and _last_ended as one unit
        self._lock = threading.Lock()
        # serializes the operations that write to the store
        self._op_lock = asyncio.Lock()
        self._session: SessionRecord | None = None
        self._ledger = BreakLedger()
        self._state = LifecycleState.IDLE
        self._last_ended: SessionRecord | None = None
        # set while end() waits on the store; break toggles are refused meanwhile
        self._ending = False

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    @property
    def is_inactive(self) -> bool:
        """Idle or ended, with no store operation in flight."""
        with self._lock:
            state = self._state
        return state in (LifecycleState.IDLE, LifecycleState.ENDED) and not self._op_lock.locked()

    def detach(self) -> None:
        """Forget the in-memory session so observers see the controller go idle.

        Called when the registry drops this controller because the stored
        records were changed behind its back.
        """
        with self._lock:
            self._session = None
            self._ledger = BreakLedger()
            self._state = LifecycleState.IDLE
            self._last_ended = None

    @property
    def session(self) -> SessionRecord | None:
        with self._lock:
            return self._session

    def _activate(self, record: SessionRecord) -> None:
        with self._lock:
            self._session = record
            self._ledger = BreakLedger()
            self._state = LifecycleState.RUNNING

    async def restore(self) -> SessionRecord | None:
        """Pick up a session the store still has open, e.g. after a restart.

        Breaks taken before the restart are unknown and count as active time.
        """
        async with self._op_lock:
            current = self.session
            if current is not None:
                return current
            active = await self.store.get_active()
            if active is None:
                return None
            self._activate(active)
            logger.info("Restored open session %s started at %s", active.id, active.start_time)
            return active

    async def start(self, is_break: bool = False) -> SessionRecord:
        async with self._op_lock:
            if self.session is not None:
                raise AlreadyActiveError("A session is already running")
            if await self.store.get_active() is not None:
                raise AlreadyActiveError("A session is already running")

            record = SessionRecord(start_time=self.clock.now(), is_break=is_break)
            session_id = await self.store.insert(record)
            record = replace(record, id=session_id)

            self._activate(record)
            logger.info("Started %s session %s", "break" if is_break else "work", session_id)
            return record

    def toggle_break(self) -> LifecycleState:
        """Pause or resume a work session. Break-typed sessions cannot be paused."""
        with self._lock:
            if self._session is None:
                raise NoActiveSessionError("No session to take a break from")
            if self._session.is_break:
                raise InvalidStateError("A break session cannot be paused for a break")
            if self._ending:
                raise InvalidStateError("The session is being ended")

            now = self.clock.now()
            if self._ledger.on_break:
                self._ledger = self._ledger.leave(now)
                self._state = LifecycleState.RUNNING
            else:
                self._ledger = self._ledger.enter(now)
                self._state = LifecycleState.ON_BREAK
            state, session_id = self._state, self._session.id

        logger.debug("Session %s is now %s", session_id, state.value)
        return state

    def elapsed_active_seconds(self) -> int:
        with self._lock:
            session, ledger = self._session, self._ledger
        if session is None:
            return 0
        now = self.clock.now()
        return net_active_seconds(session.start_time, now, ledger.break_time(now))

    def snapshot(self) -> ControllerSnapshot:
        with self._lock:
            state, session, ledger = self._state, self._session, self._ledger
            last_ended = self._last_ended

        if session is None:
            return ControllerSnapshot(
                state=state,
                session=last_ended if state == LifecycleState.ENDED else None,
                elapsed_seconds=0,
                on_break=False,
                break_seconds=0,
            )

        now = self.clock.now()
        break_time = ledger.break_time(now)
        return ControllerSnapshot(
            state=state,
            session=session,
            elapsed_seconds=net_active_seconds(session.start_time, now, break_time),
            on_break=ledger.on_break,
            break_seconds=max(0, break_time // ONE_SECOND),
        )

    async def end(self) -> SessionRecord:
        async with self._op_lock:
            with self._lock:
                session, ledger = self._session, self._ledger
                if session is None:
                    raise NoActiveSessionError("No active session to end")
                self._ending = True

            try:
                now = self.clock.now()
                ledger = ledger.closed(now)
                finalized = replace(
                    session,
                    end_time=now,
                    duration_seconds=net_active_seconds(session.start_time, now, ledger.total_break),
                )
                await self.store.update(finalized)

                with self._lock:
                    self._session = None
                    self._ledger = BreakLedger()
                    self._state = LifecycleState.ENDED
                    self._last_ended = finalized
            finally:
                with self._lock:
                    self._ending = False
            logger.info(
                "Ended session %s after %ss active (%ss on break)",
                finalized.id,
                finalized.duration_seconds,
                ledger.total_break // ONE_SECOND,
            )
            return finalized


class ControllerRegistry:
    """One controller per user with a running or paused session.

    Controllers of other users that sit idle or ended are evicted on every
    lookup; they hold nothing the store cannot give back through restore().
    """

    def __init__(self):
        self._controllers: dict[uuid.UUID, SessionController] = {}
        self._lock = asyncio.Lock()

    def _evict_inactive(self, keep: uuid.UUID) -> None:
        for user_id, controller in list(self._controllers.items()):
            if user_id != keep and controller.is_inactive:
                del self._controllers[user_id]

    async def get(
        self,
        user_id: uuid.UUID,
        factory: Callable[[], SessionController],
    ) -> SessionController:
        async with self._lock:
            self._evict_inactive(keep=user_id)
            controller = self._controllers.get(user_id)
            if controller is None:
                controller = factory()
                await controller.restore()
                self._controllers[user_id] = controller
            return controller

    def discard(self, user_id: uuid.UUID) -> None:
        controller = self._controllers.pop(user_id, None)
        if controller is not None:
            controller.detach()

    def __contains__(self, user_id: uuid.UUID) -> bool:
        return user_id in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)

"""In-memory registry of live chat connections with busy gating and inactivity sweep."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Protocol
from uuid import uuid4

from casabot.infra.observability.logger import get_logger

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Connection(Protocol):
    """Transport side of a session; a Starlette WebSocket satisfies it."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass
class Session:
    """One connected visitor."""

    id: str
    connection: Connection
    last_activity: datetime = field(default_factory=_utc_now)
    busy: bool = False
    delivery: asyncio.Task[None] | None = None
    created_at: datetime = field(default_factory=_utc_now)

    def cancel_delivery(self) -> bool:
        task = self.delivery
        self.delivery = None
        if task is None or task.done():
            return False
        task.cancel()
        return True


class SessionRegistry:
    """Thread-safe session map keyed by session id.

    The busy flag is the only thing that keeps two response cycles of one
    session apart; there is no queue behind it.
    """

    def __init__(
        self,
        *,
        timeout: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._lock = Lock()
        self._sessions: dict[str, Session] = {}
        self._timeout = timeout
        self._clock = clock

    @property
    def timeout(self) -> timedelta:
        return self._timeout

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, connection: Connection, session_id: str | None = None) -> Session:
        session = Session(
            id=session_id or str(uuid4()),
            connection=connection,
            last_activity=self._clock(),
        )
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def touch(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.last_activity = self._clock()
            return True

    def is_busy(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            return bool(session and session.busy)

    def set_busy(self, session_id: str, busy: bool) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.busy = busy

    def try_acquire(self, session_id: str) -> bool:
        """Flip idle → busy atomically; False when busy or unknown."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.busy:
                return False
            session.busy = True
            return True

    def attach_delivery(self, session_id: str, task: asyncio.Task[None]) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            task.cancel()
            return
        session.delivery = task

    def remove(self, session_id: str) -> Session | None:
        """Drop a session and cancel whatever it still had scheduled."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.cancel_delivery()
            session.busy = False
        return session

    def clear(self) -> list[Session]:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.cancel_delivery()
            session.busy = False
        return sessions

    def sweep(self, now: datetime | None = None) -> list[Session]:
        """Evict sessions idle for at least the timeout, busy or not."""
        current = now or self._clock()
        with self._lock:
            stale = [
                session
                for session in self._sessions.values()
                if current - session.last_activity >= self._timeout
            ]
            for session in stale:
                del self._sessions[session.id]
        for session in stale:
            session.cancel_delivery()
            session.busy = False
        return stale


class SessionSweeper:
    """Background task: periodically evict idle sessions and close their sockets."""

    def __init__(self, registry: SessionRegistry, *, interval_seconds: float) -> None:
        self._registry = registry
        self._interval = max(0.01, interval_seconds)
        self._task: asyncio.Task[None] | None = None

    async def sweep_once(self, now: datetime | None = None) -> list[str]:
        evicted = self._registry.sweep(now)
        for session in evicted:
            try:
                await session.connection.close()
            except Exception as exc:
                logger.debug("session.close_failed session_id=%s error=%s", session.id, exc)
            logger.info("session.evicted session_id=%s idle_since=%s", session.id, session.last_activity.isoformat())
        return [session.id for session in evicted]

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.sweep_once()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="session-sweeper")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

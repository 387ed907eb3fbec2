# src/tiktok_bff/session_store.py

import abc
import asyncio
import logging
import secrets
import time
import typing

from .session_data import SessionData

logger = logging.getLogger(__name__)


class SessionStore(abc.ABC):
    """
    Keyed mapping from session identifier to SessionData.

    Every mutation of one session must happen while holding lock(session_id).
    Different sessions never share a lock, so work on them runs concurrently.
    The lock is not reentrant.
    """

    @abc.abstractmethod
    async def get(self, session_id: str) -> typing.Optional[SessionData]:
        ...

    @abc.abstractmethod
    async def put(self, session: SessionData) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, session_id: str) -> None:
        ...

    @abc.abstractmethod
    def lock(self, session_id: str) -> asyncio.Lock:
        ...

    def new_session(self) -> SessionData:
        """A session with a fresh id that is not stored until something calls put()."""
        return SessionData(session_id=secrets.token_urlsafe(32))

    async def create(self) -> SessionData:
        session = self.new_session()
        await self.put(session)
        return session


class InMemorySessionStore(SessionStore):
    """
    Process-local store. Sessions idle for longer than max_age_seconds are evicted,
    on lookup and by a sweep that runs at most every sweep_interval_seconds when
    a new session is stored.
    """

    def __init__(
            self,
            max_age_seconds: int,
            clock: typing.Callable[[], float] = time.time,
            sweep_interval_seconds: float = 60.0,
    ):
        self._sessions: typing.Dict[str, SessionData] = {}
        self._locks: typing.Dict[str, asyncio.Lock] = {}
        self._max_age_seconds = max_age_seconds
        self._clock = clock
        self._sweep_interval_seconds = sweep_interval_seconds
        self._next_sweep_at = 0.0

    def _is_stale(self, session: SessionData, now: float) -> bool:
        return now - session.last_seen_at > self._max_age_seconds

    async def get(self, session_id: str) -> typing.Optional[SessionData]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        now = self._clock()
        if self._is_stale(session, now):
            logger.info("Evicting idle session %s...", session_id[:8])
            await self.delete(session_id)
            return None
        session.last_seen_at = now
        return session

    async def put(self, session: SessionData) -> None:
        now = self._clock()
        if session.session_id not in self._sessions and now >= self._next_sweep_at:
            self._next_sweep_at = now + self._sweep_interval_seconds
            await self.purge_expired()
        session.last_seen_at = now
        self._sessions[session.session_id] = session

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        # current holders keep their reference; new lookups get a fresh lock
        self._locks.pop(session_id, None)

    def lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    async def purge_expired(self) -> int:
        now = self._clock()
        stale = [sid for sid, s in self._sessions.items() if self._is_stale(s, now)]
        for sid in stale:
            await self.delete(sid)
        # locks taken for sessions that were never stored
        for sid in [sid for sid, lock in self._locks.items() if sid not in self._sessions and not lock.locked()]:
            del self._locks[sid]
        if stale:
            logger.info("Purged %d idle sessions", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._sessions)

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import asyncio

from utils.time import now_utc
from .exceptions import SessionNotFound


@dataclass
class ConnectionSession:
    connection_id: str
    match_id: str
    identity: str
    connected_at: datetime = field(default_factory=now_utc)


# =========================
# SessionStore Interface
# =========================

class SessionStore(ABC):
    """Maps live client connections to the (match, identity) they speak for.

    Replaces process-wide connection dictionaries so the API can swap in a
    shared store and so session expiry is testable.
    """

    @abstractmethod
    async def register(self, connection_id: str, match_id: str, identity: str) -> ConnectionSession:
        """Create (or replace) the session for `connection_id`."""

    @abstractmethod
    async def get(self, connection_id: str) -> ConnectionSession:
        """Return the session.

        Raises:
            SessionNotFound: If the connection is unknown.
        """

    @abstractmethod
    async def remove(self, connection_id: str) -> ConnectionSession | None:
        """Drop the session and return it, or None if it was not registered."""

    @abstractmethod
    async def connections_for(self, match_id: str) -> list[ConnectionSession]:
        """Return every live session attached to `match_id`."""

    @abstractmethod
    async def expire(self, max_age: timedelta) -> int:
        """Remove sessions older than `max_age`. Returns the number removed."""


class InMemorySessionStore(SessionStore):
    """Session arena for a single API process."""

    def __init__(self):
        self._sessions: dict[str, ConnectionSession] = {}
        self._by_match: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    async def register(self, connection_id: str, match_id: str, identity: str) -> ConnectionSession:
        async with self._lock:
            previous = self._sessions.pop(connection_id, None)
            if previous is not None:
                self._by_match.get(previous.match_id, set()).discard(connection_id)
            session = ConnectionSession(connection_id, match_id, identity)
            self._sessions[connection_id] = session
            self._by_match.setdefault(match_id, set()).add(connection_id)
            return session

    async def get(self, connection_id: str) -> ConnectionSession:
        session = self._sessions.get(connection_id)
        if session is None:
            raise SessionNotFound(connection_id)
        return session

    async def remove(self, connection_id: str) -> ConnectionSession | None:
        async with self._lock:
            session = self._sessions.pop(connection_id, None)
            if session is None:
                return None
            ids = self._by_match.get(session.match_id)
            if ids is not None:
                ids.discard(connection_id)
                if not ids:
                    del self._by_match[session.match_id]
            return session

    async def connections_for(self, match_id: str) -> list[ConnectionSession]:
        return [self._sessions[c] for c in sorted(self._by_match.get(match_id, ())) if c in self._sessions]

    async def expire(self, max_age: timedelta) -> int:
        cutoff = now_utc() - max_age
        stale = [c for c, s in self._sessions.items() if s.connected_at < cutoff]
        for connection_id in stale:
            await self.remove(connection_id)
        return len(stale)

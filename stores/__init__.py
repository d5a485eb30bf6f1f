# Abstractions
from .match_store import MatchStore
from .session_store import SessionStore, InMemorySessionStore, ConnectionSession

# Exceptions
from .exceptions import (
    StoreError,
    MatchStoreError,
    MatchNotFound,
    MatchAlreadyExists,
    VersionConflict,
    MatchFull,
    MatchNotJoinable,
    PlayerAlreadyJoined,
    InvalidRound,
    UnknownParticipant,
    IneligibleVoter,
    InvalidState,
    UnexpectedResult,
    SessionStoreError,
    SessionNotFound,
)

# Concrete implementations are private; only abstract interfaces are exported.
from .sqlite_match_store import SqliteMatchStore as _SqliteMatchStore

__all__ = [
    # Abstractions
    "MatchStore",
    "SessionStore",
    "InMemorySessionStore",
    "ConnectionSession",
    # Exceptions
    "StoreError",
    "MatchStoreError",
    "MatchNotFound",
    "MatchAlreadyExists",
    "VersionConflict",
    "MatchFull",
    "MatchNotJoinable",
    "PlayerAlreadyJoined",
    "InvalidRound",
    "UnknownParticipant",
    "IneligibleVoter",
    "InvalidState",
    "UnexpectedResult",
    "SessionStoreError",
    "SessionNotFound",
    # Runtime accessors
    "init_stores",
    "open_stores",
    "get_match_store",
    "get_session_store",
    "close_stores",
]


# Runtime singletons and initialization helpers
from typing import Optional
import asyncio
import config

# Use abstract interfaces for typing; the actual instance is a _SqliteMatchStore
match_store: Optional[MatchStore] = None
session_store: Optional[SessionStore] = None


def init_stores(db_path: str) -> None:
    """Initialize module-level store singletons for this process.

    This is safe to call multiple times; initialization is idempotent.
    If called inside an existing asyncio event loop it will schedule the
    underlying async connection initialization as a background task; when
    called from synchronous entrypoints (Celery worker process start)
    it will run the async initializer to completion.
    """
    global match_store, session_store

    if match_store is None:
        match_store = _SqliteMatchStore(db_path)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # no running loop -> safe to run the coroutine
            asyncio.run(match_store.init())
        else:
            # running loop -> schedule initialization
            asyncio.create_task(match_store.init())

    if session_store is None:
        session_store = InMemorySessionStore()


async def open_stores(db_path: str) -> MatchStore:
    """Async counterpart of `init_stores` for application startup hooks."""
    global match_store, session_store
    if match_store is None:
        match_store = _SqliteMatchStore(db_path)
    await match_store.init()
    if session_store is None:
        session_store = InMemorySessionStore()
    return match_store


async def close_stores() -> None:
    global match_store
    if match_store is not None:
        await match_store.close()
        match_store = None


def get_match_store() -> MatchStore:
    """Get match store, initializing if needed (for lazy initialization in Celery workers)."""
    global match_store
    if match_store is None:
        init_stores(config.DB_PATH)
    if match_store is None:
        raise RuntimeError("Failed to initialize match store")
    return match_store


def get_session_store() -> SessionStore:
    global session_store
    if session_store is None:
        session_store = InMemorySessionStore()
    return session_store

"""In-memory connection session store."""

from datetime import timedelta

import pytest

from stores import InMemorySessionStore, SessionNotFound
from utils.time import now_utc


@pytest.fixture
def sessions():
    return InMemorySessionStore()


async def test_register_and_lookup(sessions):
    await sessions.register("c1", "m1", "A")
    await sessions.register("c2", "m1", "B")
    await sessions.register("c3", "m2", "A")

    session = await sessions.get("c1")
    assert (session.match_id, session.identity) == ("m1", "A")
    assert [s.connection_id for s in await sessions.connections_for("m1")] == ["c1", "c2"]


async def test_remove(sessions):
    await sessions.register("c1", "m1", "A")

    removed = await sessions.remove("c1")

    assert removed is not None and removed.identity == "A"
    assert await sessions.remove("c1") is None
    assert await sessions.connections_for("m1") == []
    with pytest.raises(SessionNotFound):
        await sessions.get("c1")


async def test_reregister_moves_connection(sessions):
    await sessions.register("c1", "m1", "A")
    await sessions.register("c1", "m2", "C")

    assert await sessions.connections_for("m1") == []
    assert (await sessions.get("c1")).match_id == "m2"


async def test_expire_removes_old_sessions(sessions):
    old = await sessions.register("c1", "m1", "A")
    old.connected_at = now_utc() - timedelta(hours=5)
    await sessions.register("c2", "m1", "B")

    assert await sessions.expire(timedelta(hours=1)) == 1
    assert [s.connection_id for s in await sessions.connections_for("m1")] == ["c2"]

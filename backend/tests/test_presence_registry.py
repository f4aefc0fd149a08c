"""Unit tests for the in-memory presence registry."""

from __future__ import annotations

import pytest

from conftest import FakeConnection
from skytalk.realtime.presence import PresenceRegistry


def test_register_replaces_existing_entry() -> None:
    registry = PresenceRegistry()
    first = FakeConnection("first")
    second = FakeConnection("second")

    assert registry.register(1, first) is None
    replaced = registry.register(1, second)

    assert replaced is not None and replaced.handle is first
    assert len(registry) == 1
    assert registry.lookup(1) is second
    assert registry.online_user_ids() == [1]


def test_stale_handle_cannot_unregister_newer_connection() -> None:
    registry = PresenceRegistry()
    first = FakeConnection("first")
    second = FakeConnection("second")
    registry.register(1, first)
    registry.register(1, second)

    assert registry.unregister(1, first) is False
    assert registry.lookup(1) is second

    assert registry.unregister(1, second) is True
    assert registry.lookup(1) is None
    assert not registry.is_online(1)


def test_unregister_without_handle_and_missing_user() -> None:
    registry = PresenceRegistry()
    registry.register(5, FakeConnection("c"))

    assert registry.unregister(7) is False
    assert registry.unregister(5) is True
    assert len(registry) == 0


def test_entry_records_connection_time() -> None:
    registry = PresenceRegistry()
    handle = FakeConnection("c")
    registry.register(3, handle)

    entry = registry.entry(3)
    assert entry is not None
    assert entry.user_id == 3
    assert entry.handle is handle
    assert entry.connected_at.tzinfo is not None


@pytest.mark.anyio("asyncio")
async def test_broadcast_except_skips_origin_and_dead_handles() -> None:
    registry = PresenceRegistry()
    origin = FakeConnection("origin")
    peer = FakeConnection("peer")
    dead = FakeConnection("dead", alive=False)
    registry.register(1, origin)
    registry.register(2, peer)
    registry.register(3, dead)

    delivered = await registry.broadcast_except(1, "user-online", {"userId": 1})

    assert delivered == 1
    assert origin.sent == []
    assert peer.sent == [("user-online", {"userId": 1})]


@pytest.mark.anyio("asyncio")
async def test_broadcast_except_limited_to_recipients() -> None:
    registry = PresenceRegistry()
    handles = {uid: FakeConnection(f"c{uid}") for uid in (1, 2, 3)}
    for uid, handle in handles.items():
        registry.register(uid, handle)

    delivered = await registry.broadcast_except(1, "ping", recipients=[1, 3, 99])

    assert delivered == 1
    assert handles[3].names() == ["ping"]
    assert handles[2].sent == []


@pytest.mark.anyio("asyncio")
async def test_send_to_absent_user_returns_false() -> None:
    registry = PresenceRegistry()

    assert await registry.send_to(42, "receive-message", {}) is False

"""Connection lifecycle handled by the session manager."""

from __future__ import annotations

import asyncio

import pytest

from conftest import ALICE, BOB, CAROL, FakeConnection
from skytalk.realtime.errors import (
    ExpiredCredentialError,
    InvalidCredentialError,
    StoreUnavailableError,
)

pytestmark = pytest.mark.anyio("asyncio")


async def test_handshake_resolves_identity(harness) -> None:
    identity = await harness.sessions.handshake("alice-token")

    assert identity == ALICE
    assert len(harness.registry) == 0


@pytest.mark.parametrize(
    ("credential", "error", "code"),
    [
        (None, InvalidCredentialError, "credential_invalid"),
        ("", InvalidCredentialError, "credential_invalid"),
        ("forged", InvalidCredentialError, "credential_invalid"),
        ("expired", ExpiredCredentialError, "credential_expired"),
    ],
)
async def test_handshake_failures_register_nothing(harness, credential, error, code) -> None:
    with pytest.raises(error) as exc:
        await harness.sessions.handshake(credential)

    assert exc.value.code == code
    assert len(harness.registry) == 0
    assert harness.sessions.active_states() == []


async def test_open_sends_online_friends_and_announces_presence(harness) -> None:
    _, bob = await harness.connect(BOB)
    _, carol = await harness.connect(CAROL)

    _, alice = await harness.connect(ALICE)

    assert alice.sent[0] == ("online-users", {"userIds": [BOB.id]})
    assert bob.events("user-online")[-1] == ("user-online", {"userId": ALICE.id})
    assert carol.events("user-online")[-1] == ("user-online", {"userId": ALICE.id})
    assert alice.events("user-online") == []
    assert harness.registry.is_online(ALICE.id)


async def test_open_survives_friend_lookup_failure(harness) -> None:
    async def unavailable(user_id: int):
        raise StoreUnavailableError()

    harness.friendships.friend_ids = unavailable
    _, bob = await harness.connect(BOB)

    state, alice = await harness.connect(ALICE)

    assert alice.events("online-users") == []
    assert bob.events("user-online") == [("user-online", {"userId": ALICE.id})]
    assert state in harness.sessions.active_states()


async def test_failed_open_leaves_no_presence_entry(harness) -> None:
    async def broken(user_id: int):
        raise ValueError("corrupt friend row")

    _, bob = await harness.connect(BOB)
    harness.friendships.friend_ids = broken

    with pytest.raises(ValueError):
        await harness.connect(ALICE)

    assert not harness.registry.is_online(ALICE.id)
    assert harness.registry.lookup(ALICE.id) is None
    assert [state.user_id for state in harness.sessions.active_states()] == [BOB.id]
    assert bob.events("user-online") == []


async def test_close_announces_offline_once(harness) -> None:
    alice_state, _ = await harness.connect(ALICE)
    _, bob = await harness.connect(BOB)

    await harness.sessions.close(alice_state)
    await harness.sessions.close(alice_state)

    assert bob.events("user-offline") == [("user-offline", {"userId": ALICE.id})]
    assert not harness.registry.is_online(ALICE.id)
    assert alice_state.closed


async def test_reconnect_replaces_entry_and_stale_close_is_silent(harness) -> None:
    _, bob = await harness.connect(BOB)
    old_state, old_handle = await harness.connect(ALICE, "alice-old")
    new_state, new_handle = await harness.connect(ALICE, "alice-new")

    await harness.sessions.close(old_state)

    assert harness.registry.lookup(ALICE.id) is new_handle
    assert bob.events("user-offline") == []
    assert len(bob.events("user-online")) == 2

    await harness.relay.dispatch(
        await _state_of(harness, BOB),
        {"event": "send-message", "data": {"receiverId": ALICE.id, "message": "who's there"}},
    )
    assert len(new_handle.events("receive-message")) == 1
    assert old_handle.events("receive-message") == []

    await harness.sessions.close(new_state)
    assert bob.events("user-offline") == [("user-offline", {"userId": ALICE.id})]


async def _state_of(harness, identity):
    return next(state for state in harness.sessions.active_states() if state.identity == identity)


async def test_typing_timer_expires_into_stop_typing(harness) -> None:
    alice_state, _ = await harness.connect(ALICE)
    _, bob = await harness.connect(BOB)

    await harness.relay.dispatch(alice_state, {"event": "typing", "data": {"receiverId": BOB.id}})
    assert BOB.id in alice_state.typing_timers

    await asyncio.sleep(0.2)

    assert bob.events("user-stop-typing") == [("user-stop-typing", {"userId": ALICE.id})]
    assert alice_state.typing_timers == {}


async def test_repeated_typing_rearms_single_timer(harness) -> None:
    alice_state, _ = await harness.connect(ALICE)
    _, bob = await harness.connect(BOB)

    for _ in range(3):
        await harness.relay.dispatch(alice_state, {"event": "typing", "data": {"receiverId": BOB.id}})
        await asyncio.sleep(0.02)

    assert len(alice_state.typing_timers) == 1
    assert bob.events("user-stop-typing") == []
    assert len(bob.events("user-typing")) == 3

    await asyncio.sleep(0.2)
    assert len(bob.events("user-stop-typing")) == 1


async def test_close_cancels_typing_and_notifies_receiver(harness) -> None:
    alice_state, _ = await harness.connect(ALICE)
    _, bob = await harness.connect(BOB)
    await harness.relay.dispatch(alice_state, {"event": "typing", "data": {"receiverId": BOB.id}})

    await harness.sessions.close(alice_state)
    await asyncio.sleep(0.1)

    assert bob.events("user-stop-typing") == [("user-stop-typing", {"userId": ALICE.id})]
    assert alice_state.typing_timers == {}


async def test_shutdown_closes_every_session(harness) -> None:
    await harness.connect(ALICE)
    await harness.connect(BOB)

    await harness.sessions.shutdown()

    assert harness.sessions.active_states() == []
    assert len(harness.registry) == 0


async def test_dead_handle_does_not_break_presence_broadcast(harness) -> None:
    dead = FakeConnection("bob-dead", alive=False)
    await harness.sessions.open(BOB, dead)
    _, carol = await harness.connect(CAROL)

    _, alice = await harness.connect(ALICE)

    assert carol.events("user-online")[-1] == ("user-online", {"userId": ALICE.id})
    assert alice.sent[0] == ("online-users", {"userIds": [BOB.id]})

"""End-to-end tests of the realtime chat socket."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import WebSocketDisconnect

from app.core.security import create_access_token
from app.models import Message


def connect(client, token: str):
    return client.websocket_connect(f"/ws/chat?token={token}")


def send(connection, event: str, data: dict | None = None) -> None:
    frame = {"event": event}
    if data is not None:
        frame["data"] = data
    connection.send_json(frame)


@pytest.mark.parametrize(
    ("token", "reason"),
    [
        ("not-a-jwt", "Could not validate credentials"),
        (None, "Missing token"),
    ],
)
def test_handshake_rejects_bad_credentials(client, token, reason):
    url = "/ws/chat" if token is None else f"/ws/chat?token={token}"

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(url) as connection:
            connection.receive_json()

    assert exc.value.code == 1008
    assert exc.value.reason == reason


def test_handshake_distinguishes_expired_token(client, make_user):
    user_id, _ = make_user("late")
    expired = create_access_token({"sub": str(user_id)}, expires_delta=timedelta(minutes=-1))

    with pytest.raises(WebSocketDisconnect) as exc:
        with connect(client, expired) as connection:
            connection.receive_json()

    assert exc.value.code == 1008
    assert exc.value.reason == "Token has expired"


def test_handshake_rejects_unknown_user(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with connect(client, create_access_token({"sub": "424242"})) as connection:
            connection.receive_json()

    assert exc.value.code == 1008


def test_presence_snapshot_and_broadcasts(client, make_user, befriend):
    alice_id, alice = make_user("alice")
    bob_id, bob = make_user("bob")
    befriend(alice_id, bob_id)

    with connect(client, alice) as alice_ws:
        assert alice_ws.receive_json() == {"event": "online-users", "data": {"userIds": []}}

        with connect(client, bob) as bob_ws:
            assert bob_ws.receive_json() == {"event": "online-users", "data": {"userIds": [alice_id]}}
            assert alice_ws.receive_json() == {"event": "user-online", "data": {"userId": bob_id}}

            friends = client.get(
                "/api/friends/list", headers={"Authorization": f"Bearer {alice}"}
            ).json()
            assert friends[0]["is_online"] is True

        assert alice_ws.receive_json() == {"event": "user-offline", "data": {"userId": bob_id}}


def test_message_round_trip_between_friends(client, make_user, befriend, session_factory):
    alice_id, alice = make_user("alice")
    bob_id, bob = make_user("bob")
    befriend(alice_id, bob_id)

    with connect(client, alice) as alice_ws, connect(client, bob) as bob_ws:
        alice_ws.receive_json()
        alice_ws.receive_json()
        bob_ws.receive_json()

        send(alice_ws, "send-message", {"receiverId": bob_id, "message": "  hello bob  "})

        received = bob_ws.receive_json()
        ack = alice_ws.receive_json()
        assert received["event"] == "receive-message"
        assert ack["event"] == "message-sent"
        assert received["data"] == ack["data"]
        assert received["data"]["message"] == "hello bob"
        assert received["data"]["sender"]["username"] == "alice"

        message_id = received["data"]["id"]
        send(bob_ws, "delete-message", {"messageId": message_id, "receiverId": alice_id})

        expected = {"event": "message-deleted", "data": {"messageId": message_id, "deletedBy": "receiver"}}
        assert bob_ws.receive_json() == expected
        assert alice_ws.receive_json() == expected

    with session_factory() as session:
        assert session.get(Message, message_id) is None


def test_message_to_offline_friend_is_stored(client, make_user, befriend):
    alice_id, alice = make_user("alice")
    bob_id, bob = make_user("bob")
    befriend(alice_id, bob_id)

    with connect(client, alice) as alice_ws:
        alice_ws.receive_json()
        send(alice_ws, "send-message", {"receiverId": bob_id, "message": "while you were out"})
        ack = alice_ws.receive_json()
        assert ack["event"] == "message-sent"

    history = client.get(
        f"/api/chat/conversation/{alice_id}", headers={"Authorization": f"Bearer {bob}"}
    ).json()
    assert [item["message"] for item in history] == ["while you were out"]
    assert history[0]["id"] == ack["data"]["id"]


def test_removing_friend_blocks_further_messages(client, make_user, befriend):
    alice_id, alice = make_user("alice")
    bob_id, bob = make_user("bob")
    befriend(alice_id, bob_id)

    with connect(client, alice) as alice_ws:
        alice_ws.receive_json()
        send(alice_ws, "send-message", {"receiverId": bob_id, "message": "before"})
        assert alice_ws.receive_json()["event"] == "message-sent"

        removed = client.delete(f"/api/friends/{alice_id}", headers={"Authorization": f"Bearer {bob}"})
        assert removed.status_code == 204

        send(alice_ws, "send-message", {"receiverId": bob_id, "message": "after"})
        error = alice_ws.receive_json()
        assert error["event"] == "error"
        assert error["data"]["code"] == "not_friends"


def test_errors_keep_the_socket_open(client, make_user, befriend):
    alice_id, alice = make_user("alice")
    bob_id, _ = make_user("bob")
    stranger_id, _ = make_user("stranger")
    befriend(alice_id, bob_id)

    with connect(client, alice) as alice_ws:
        alice_ws.receive_json()

        alice_ws.send_text("{broken")
        error = alice_ws.receive_json()
        assert error["event"] == "error"
        assert error["data"]["code"] == "validation_error"

        send(alice_ws, "send-message", {"receiverId": stranger_id, "message": "hi"})
        error = alice_ws.receive_json()
        assert error["data"] == {
            "message": "You can only message friends",
            "code": "not_friends",
            "event": "send-message",
        }

        send(alice_ws, "delete-message", {"messageId": 12345})
        assert alice_ws.receive_json()["data"]["code"] == "not_found"

        send(alice_ws, "send-message", {"receiverId": bob_id, "message": "still here"})
        assert alice_ws.receive_json()["event"] == "message-sent"


def test_typing_indicators_are_forwarded(client, make_user, befriend):
    alice_id, alice = make_user("alice")
    bob_id, bob = make_user("bob")
    befriend(alice_id, bob_id)

    with connect(client, alice) as alice_ws, connect(client, bob) as bob_ws:
        alice_ws.receive_json()
        alice_ws.receive_json()
        bob_ws.receive_json()

        send(alice_ws, "typing", {"receiverId": bob_id})
        assert bob_ws.receive_json() == {
            "event": "user-typing",
            "data": {"userId": alice_id, "username": "alice"},
        }

        send(alice_ws, "stop-typing", {"receiverId": bob_id})
        assert bob_ws.receive_json() == {"event": "user-stop-typing", "data": {"userId": alice_id}}


def test_client_ping_gets_pong(client, make_user):
    _, token = make_user("pinger")

    with connect(client, token) as ws:
        ws.receive_json()
        send(ws, "ping")
        assert ws.receive_json() == {"event": "pong"}

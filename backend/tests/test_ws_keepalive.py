from __future__ import annotations

import time

from starlette.testclient import WebSocketTestSession

from app.api import ws as ws_module


def test_chat_connection_survives_keepalive_timeout(client, make_user) -> None:
    """Ensure that the server side keepalive pings keep the socket open."""

    _, token = make_user("keepalive-user")

    settings = ws_module.settings
    original_timeout = settings.websocket_keepalive_timeout_seconds
    original_interval = settings.websocket_keepalive_ping_interval_seconds

    settings.websocket_keepalive_timeout_seconds = 0.1
    settings.websocket_keepalive_ping_interval_seconds = 0.05

    try:
        with client.websocket_connect(f"/ws/chat?token={token}") as connection:
            _assert_keepalive_sequence(connection)
    finally:
        settings.websocket_keepalive_timeout_seconds = original_timeout
        settings.websocket_keepalive_ping_interval_seconds = original_interval


def _assert_keepalive_sequence(connection: WebSocketTestSession) -> None:
    """Observe two keepalive pings with client responses to keep the connection active."""

    snapshot = connection.receive_json()
    assert snapshot["event"] == "online-users"

    time.sleep(0.15)
    ping = connection.receive_json()
    assert ping["event"] == "ping"
    connection.send_json({"event": "pong"})

    time.sleep(0.12)
    ping_again = connection.receive_json()
    assert ping_again["event"] == "ping"
    connection.send_json({"event": "pong"})

    connection.send_json({"event": "ping"})
    pong = connection.receive_json()
    while pong["event"] == "ping":
        pong = connection.receive_json()
    assert pong["event"] == "pong"

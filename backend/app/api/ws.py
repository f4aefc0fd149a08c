"""WebSocket endpoint for real-time private messaging."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.config import get_settings
from app.services.realtime import get_realtime_for_websocket
from skytalk.realtime.connection import WebSocketConnection, safe_send_json
from skytalk.realtime.errors import AuthError, PayloadValidationError, StoreUnavailableError
from skytalk.realtime.events import PING, PONG, decode_frame, encode_frame

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or encode_frame(PING)
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


def _extract_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    return token or None


def _frame_receiver(websocket: WebSocket) -> Callable[[], Awaitable[str | bytes]]:
    async def receive() -> str | bytes:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
        text = message.get("text")
        return text if text is not None else message.get("bytes") or b""

    return receive


@router.websocket("/chat")
async def chat_socket(websocket: WebSocket) -> None:
    """Authenticated realtime channel carrying relay events in both directions."""

    realtime = get_realtime_for_websocket(websocket)
    sessions = realtime.sessions

    # Accept first: a close before accept() reaches the client as a bare HTTP 403.
    await websocket.accept()
    try:
        identity = await sessions.handshake(_extract_token(websocket))
    except AuthError as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return
    except StoreUnavailableError:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Service unavailable")
        return

    connection = WebSocketConnection(websocket)
    state = await sessions.open(identity, connection)

    try:
        async for raw in iter_keepalive_messages(
            websocket,
            _frame_receiver(websocket),
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            try:
                frame = decode_frame(raw)
            except PayloadValidationError as exc:
                await realtime.relay.report(state, exc)
                continue

            event = frame.get("event")
            if event == PING:
                await connection.send(PONG)
                continue
            if event == PONG:
                continue
            await realtime.relay.dispatch(state, frame)
    finally:
        await sessions.close(state)

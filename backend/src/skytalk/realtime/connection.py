"""WebSocket-backed connection handle."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from .events import encode_frame

logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


class WebSocketConnection:
    """Adapts a Starlette WebSocket to the relay's connection handle protocol."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self.websocket = websocket
        self.connection_id = connection_id or uuid.uuid4().hex

    def __repr__(self) -> str:
        return f"<WebSocketConnection {self.connection_id}>"

    async def send(self, event: str, data: dict[str, Any] | None = None) -> bool:
        return await safe_send_json(self.websocket, encode_frame(event, data))

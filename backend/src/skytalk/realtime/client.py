"""Reference chat client with a bounded reconnect policy."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidStatus

from .errors import ExpiredCredentialError
from .events import PING, PONG, encode_frame

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, dict[str, Any]], Awaitable[None] | None]

_AUTH_REJECTION_STATUSES = frozenset({401, 403})
_POLICY_VIOLATION = 1008


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Exponential backoff limited to ``max_attempts`` tries per outage."""

    max_attempts: int = 5
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        for _ in range(max(self.max_attempts, 0)):
            yield min(delay, self.max_delay)
            delay *= self.multiplier


class ReconnectExhaustedError(ConnectionError):
    """Raised once every reconnect attempt of an outage has failed."""


class HandshakeRejectedError(ConnectionError):
    """Server refused the credential; retrying with the same token is pointless."""


class CredentialExpiredError(HandshakeRejectedError):
    """Server refused an expired credential; refresh it before reconnecting."""


def _rejection(reason: str) -> HandshakeRejectedError:
    if reason == ExpiredCredentialError.default_message:
        return CredentialExpiredError(reason)
    return HandshakeRejectedError(reason or "Handshake rejected")


class ChatClient:
    """Keeps one realtime connection alive and feeds decoded events to a callback.

    Keepalive pings from the server are answered automatically. A successful
    connection resets the retry budget.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        on_event: EventCallback | None = None,
        policy: ReconnectPolicy | None = None,
        connect: Callable[[str], Any] = ws_connect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.token = token
        self.policy = policy or ReconnectPolicy()
        self._on_event = on_event
        self._connect = connect
        self._sleep = sleep
        self._websocket: Any = None
        self._closing = False
        self.connected = asyncio.Event()
        self.connections_made = 0

    def _build_url(self) -> str:
        parts = urlsplit(self.url)
        query = [(key, value) for key, value in parse_qsl(parts.query) if key != "token"]
        query.append(("token", self.token))
        return urlunsplit(parts._replace(query=urlencode(query)))

    async def run(self) -> None:
        delays: Iterator[float] | None = None
        while not self._closing:
            try:
                async with self._connect(self._build_url()) as websocket:
                    self._websocket = websocket
                    self.connections_made += 1
                    delays = None
                    self.connected.set()
                    logger.info("Connected to %s", self.url)
                    await self._consume(websocket)
            except InvalidStatus as exc:
                status_code = exc.response.status_code
                if status_code in _AUTH_REJECTION_STATUSES:
                    raise HandshakeRejectedError(f"Handshake rejected with HTTP {status_code}") from exc
                logger.warning("Handshake failed with HTTP %s", status_code)
            except ConnectionClosed as exc:
                if exc.rcvd is not None and exc.rcvd.code == _POLICY_VIOLATION:
                    raise _rejection(exc.rcvd.reason) from exc
                logger.warning("Connection lost: %s", exc)
            except (OSError, asyncio.TimeoutError) as exc:
                logger.warning("Connection lost: %s", exc)
            finally:
                self._websocket = None
                self.connected.clear()

            if self._closing:
                return
            if delays is None:
                delays = self.policy.delays()
            delay = next(delays, None)
            if delay is None:
                raise ReconnectExhaustedError(
                    f"Gave up after {self.policy.max_attempts} reconnect attempts"
                )
            logger.info("Reconnecting in %.1fs", delay)
            await self._sleep(delay)

    async def _consume(self, websocket: Any) -> None:
        async for raw in websocket:
            try:
                frame = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring non-JSON frame")
                continue
            if not isinstance(frame, dict):
                continue
            event = frame.get("event")
            if event == PING:
                await websocket.send(json.dumps(encode_frame(PONG)))
                continue
            if event == PONG or self._on_event is None:
                continue
            result = self._on_event(str(event), frame.get("data") or {})
            if inspect.isawaitable(result):
                await result

    async def send(self, event: str, data: dict[str, Any] | None = None) -> None:
        if self._websocket is None:
            raise ConnectionError("Not connected")
        await self._websocket.send(json.dumps(encode_frame(event, data)))

    async def close(self) -> None:
        self._closing = True
        if self._websocket is not None:
            await self._websocket.close()

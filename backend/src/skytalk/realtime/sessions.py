"""Connection lifecycle: handshake, activation, typing timers and closing."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.monitoring.metrics import realtime_events_total

from .errors import InvalidCredentialError, StoreUnavailableError
from .events import ONLINE_USERS, USER_OFFLINE, USER_ONLINE, USER_STOP_TYPING
from .models import UserIdentity
from .ports import ConnectionHandle, FriendshipOracle, IdentityVerifier
from .presence import PresenceRegistry

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class ConnectionState:
    """Everything the server tracks for one Active connection."""

    identity: UserIdentity
    handle: ConnectionHandle
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    typing_timers: dict[int, asyncio.Task[None]] = field(default_factory=dict)
    closed: bool = False

    @property
    def user_id(self) -> int:
        return self.identity.id


class SessionManager:
    """Drives each connection through Handshake -> Active -> Closing."""

    def __init__(
        self,
        registry: PresenceRegistry,
        verifier: IdentityVerifier,
        friendships: FriendshipOracle,
        *,
        typing_ttl_seconds: float = 5.0,
    ) -> None:
        self._registry = registry
        self._verifier = verifier
        self._friendships = friendships
        self._typing_ttl = typing_ttl_seconds
        self._states: dict[str, ConnectionState] = {}

    @property
    def registry(self) -> PresenceRegistry:
        return self._registry

    def active_states(self) -> list[ConnectionState]:
        return list(self._states.values())

    async def handshake(self, credential: str | None) -> UserIdentity:
        """Verify the connection credential. Nothing is registered on failure."""

        if not credential:
            raise InvalidCredentialError("Missing token")
        return await self._verifier.authenticate(credential)

    async def open(self, identity: UserIdentity, handle: ConnectionHandle) -> ConnectionState:
        state = ConnectionState(identity=identity, handle=handle)
        self._states[handle.connection_id] = state
        self._registry.register(identity.id, handle)
        logger.info("User %s connected (%s)", identity.id, handle.connection_id)

        try:
            await self._send_online_friends(state)
            await self._registry.broadcast_except(identity.id, USER_ONLINE, {"userId": identity.id})
        except BaseException:
            # A half-opened connection must not stay registered.
            await self.close(state)
            raise
        realtime_events_total.labels(USER_ONLINE, "out").inc()
        return state

    async def _send_online_friends(self, state: ConnectionState) -> None:
        try:
            friend_ids = set(await self._friendships.friend_ids(state.user_id))
        except StoreUnavailableError:
            logger.warning("Could not load friends of user %s for presence snapshot", state.user_id)
            return
        online = sorted(uid for uid in friend_ids if self._registry.is_online(uid))
        await state.handle.send(ONLINE_USERS, {"userIds": online})

    async def close(self, state: ConnectionState) -> None:
        """Tear down a connection. Safe to call more than once."""

        if state.closed:
            return
        state.closed = True
        self._states.pop(state.handle.connection_id, None)

        receivers = list(state.typing_timers)
        for task in state.typing_timers.values():
            task.cancel()
        state.typing_timers.clear()

        removed = self._registry.unregister(state.user_id, state.handle)
        logger.info(
            "User %s disconnected (%s)%s",
            state.user_id,
            state.handle.connection_id,
            "" if removed else ", newer connection kept",
        )

        for receiver_id in receivers:
            await self._send_stop_typing(state.user_id, receiver_id)
        if removed:
            await self._registry.broadcast_except(state.user_id, USER_OFFLINE, {"userId": state.user_id})
            realtime_events_total.labels(USER_OFFLINE, "out").inc()

    async def shutdown(self) -> None:
        for state in self.active_states():
            await self.close(state)

    def arm_typing_timer(self, state: ConnectionState, receiver_id: int) -> None:
        """(Re)start the idle timer that emits ``user-stop-typing`` to ``receiver_id``."""

        self.disarm_typing_timer(state, receiver_id)
        if state.closed or self._typing_ttl <= 0:
            return
        state.typing_timers[receiver_id] = asyncio.create_task(
            self._expire_typing(state, receiver_id),
            name=f"typing-timeout:{state.user_id}->{receiver_id}",
        )

    def disarm_typing_timer(self, state: ConnectionState, receiver_id: int) -> bool:
        task = state.typing_timers.pop(receiver_id, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    async def _expire_typing(self, state: ConnectionState, receiver_id: int) -> None:
        await asyncio.sleep(self._typing_ttl)
        if state.typing_timers.get(receiver_id) is asyncio.current_task():
            del state.typing_timers[receiver_id]
        await self._send_stop_typing(state.user_id, receiver_id)

    async def _send_stop_typing(self, user_id: int, receiver_id: int) -> None:
        if await self._registry.send_to(receiver_id, USER_STOP_TYPING, {"userId": user_id}):
            realtime_events_total.labels(USER_STOP_TYPING, "out").inc()

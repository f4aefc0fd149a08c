"""Friendship-gated message relay layered on top of active sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, TypeVar
from weakref import WeakValueDictionary

from app.monitoring.metrics import (
    realtime_events_total,
    relay_deliveries_total,
    relay_errors_total,
)

from .errors import (
    ForbiddenError,
    NotFoundError,
    NotFriendsError,
    PayloadValidationError,
    RelayError,
    StoreUnavailableError,
)
from .events import (
    CLIENT_EVENTS,
    ERROR,
    MESSAGE_DELETED,
    MESSAGE_SENT,
    RECEIVE_MESSAGE,
    USER_STOP_TYPING,
    USER_TYPING,
    DeleteMessage,
    RelayEvent,
    SendMessage,
    StopTyping,
    Typing,
    parse_client_event,
)
from .models import RelayMessage, UserIdentity
from .ports import ConnectionHandle, FriendshipOracle, MessageStore
from .sessions import ConnectionState, SessionManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

INTERNAL_ERROR_MESSAGE = "Internal server error"


class MessageRelay:
    """Handles client events of Active connections.

    Every handler invocation is fault isolated: failures become an ``error``
    event on the originating connection and never close it. Sends and deletes
    of one user are serialized through a per-user lock so they are persisted
    and forwarded in call order.
    """

    def __init__(
        self,
        sessions: SessionManager,
        friendships: FriendshipOracle,
        store: MessageStore,
        *,
        max_body_length: int | None = None,
        store_timeout_seconds: float | None = None,
    ) -> None:
        self._sessions = sessions
        self._registry = sessions.registry
        self._friendships = friendships
        self._store = store
        self._max_body_length = max_body_length
        self._store_timeout = store_timeout_seconds
        self._user_locks: WeakValueDictionary[int, asyncio.Lock] = WeakValueDictionary()

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    async def _deliver(self, user_id: int, event: str, payload: dict[str, Any]) -> bool:
        delivered = await self._registry.send_to(user_id, event, payload)
        if delivered:
            realtime_events_total.labels(event, "out").inc()
        return delivered

    async def _emit(self, handle: ConnectionHandle, event: str, payload: dict[str, Any]) -> bool:
        sent = await handle.send(event, payload)
        if sent:
            realtime_events_total.labels(event, "out").inc()
        return sent

    async def _call_store(self, awaitable: Awaitable[T]) -> T:
        try:
            if self._store_timeout:
                return await asyncio.wait_for(awaitable, timeout=self._store_timeout)
            return await awaitable
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError("Message store timed out, please retry") from exc

    async def dispatch(self, state: ConnectionState, frame: Any) -> None:
        """Parse and handle one decoded frame, reporting failures to the sender."""

        event_name = frame.get("event") if isinstance(frame, dict) else None
        if event_name not in CLIENT_EVENTS:
            event_name = None
        try:
            event = parse_client_event(frame, max_body_length=self._max_body_length)
            realtime_events_total.labels(event.event, "in").inc()
            await self.handle(state, event)
        except RelayError as exc:
            await self.report(state, exc, event_name)
        except Exception:
            logger.exception(
                "Unhandled error while processing %s from user %s", event_name, state.user_id
            )
            relay_errors_total.labels("internal_error").inc()
            await state.handle.send(
                ERROR,
                {"message": INTERNAL_ERROR_MESSAGE, "code": "internal_error", "event": event_name},
            )

    async def report(self, state: ConnectionState, exc: RelayError, event_name: str | None = None) -> None:
        relay_errors_total.labels(exc.code).inc()
        if isinstance(exc, StoreUnavailableError):
            logger.warning("Store failure for user %s on %s: %s", state.user_id, event_name, exc.message)
        else:
            logger.info("Rejected %s from user %s: %s", event_name, state.user_id, exc.message)
        await state.handle.send(ERROR, exc.to_payload(event_name))

    async def handle(self, state: ConnectionState, event: RelayEvent) -> None:
        if isinstance(event, SendMessage):
            await self.send_as(state.identity, event, origin=state.handle)
        elif isinstance(event, Typing):
            await self._forward_typing(state, event.receiver_id)
        elif isinstance(event, StopTyping):
            await self._forward_stop_typing(state, event.receiver_id)
        elif isinstance(event, DeleteMessage):
            await self.delete_as(state.identity, event.message_id, origin=state.handle)
        else:  # pragma: no cover - the union is exhaustive
            raise PayloadValidationError(f"Unsupported event: {type(event).__name__}")

    async def send_as(
        self,
        identity: UserIdentity,
        command: SendMessage,
        *,
        origin: ConnectionHandle | None = None,
    ) -> RelayMessage:
        """Persist a message from ``identity`` and relay it to the receiver if present.

        The sender is always acknowledged with ``message-sent`` on ``origin``,
        whether or not the receiver was reached.
        """

        async with self._lock_for(identity.id):
            friends = await self._call_store(
                self._friendships.are_friends(identity.id, command.receiver_id)
            )
            if not friends:
                raise NotFriendsError()

            message = await self._call_store(self._store.create_message(command.to_draft(identity.id)))
            payload = message.to_event()

            delivered = await self._deliver(command.receiver_id, RECEIVE_MESSAGE, payload)
            relay_deliveries_total.labels("live" if delivered else "stored").inc()
            if origin is not None:
                await self._emit(origin, MESSAGE_SENT, payload)
            logger.debug(
                "Message %s from %s to %s %s",
                message.id,
                identity.id,
                command.receiver_id,
                "delivered" if delivered else "stored",
            )
            return message

    async def delete_as(
        self,
        identity: UserIdentity,
        message_id: int,
        *,
        origin: ConnectionHandle | None = None,
    ) -> RelayMessage:
        """Permanently delete a message on behalf of one of its participants."""

        async with self._lock_for(identity.id):
            message = await self._call_store(self._store.get_message(message_id))
            if message is None:
                raise NotFoundError("Message not found")
            if not message.involves(identity.id):
                raise ForbiddenError("You can only delete messages from your own conversations")

            if not await self._call_store(self._store.delete_message(message_id)):
                raise NotFoundError("Message not found")

            deleted_by = "sender" if identity.id == message.sender_id else "receiver"
            payload = {"messageId": message.id, "deletedBy": deleted_by}

            notified: set[str] = set()
            targets = [self._registry.lookup(uid) for uid in (message.sender_id, message.receiver_id)]
            targets.append(origin)
            for handle in targets:
                if handle is None or handle.connection_id in notified:
                    continue
                notified.add(handle.connection_id)
                await self._emit(handle, MESSAGE_DELETED, payload)

            logger.info("Message %s deleted by user %s (%s)", message.id, identity.id, deleted_by)
            return message

    async def _forward_typing(self, state: ConnectionState, receiver_id: int) -> None:
        self._sessions.arm_typing_timer(state, receiver_id)
        await self._deliver(
            receiver_id,
            USER_TYPING,
            {"userId": state.user_id, "username": state.identity.username},
        )

    async def _forward_stop_typing(self, state: ConnectionState, receiver_id: int) -> None:
        self._sessions.disarm_typing_timer(state, receiver_id)
        await self._deliver(receiver_id, USER_STOP_TYPING, {"userId": state.user_id})

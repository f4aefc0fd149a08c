"""Protocols describing the collaborators consumed by the realtime core."""

from __future__ import annotations

from typing import Any, Iterable, Protocol

from .models import MessageDraft, RelayMessage, UserIdentity


class ConnectionHandle(Protocol):
    """Transport-agnostic handle to a single live client connection."""

    connection_id: str

    async def send(self, event: str, data: dict[str, Any] | None = None) -> bool:
        """Deliver an event, returning ``False`` when the transport is gone."""


class IdentityVerifier(Protocol):
    async def authenticate(self, credential: str) -> UserIdentity:
        """Resolve a bearer credential or raise an :class:`AuthError` subclass."""


class FriendshipOracle(Protocol):
    async def are_friends(self, user_id: int, other_id: int) -> bool:
        """Return whether both users share an accepted friendship edge."""

    async def friend_ids(self, user_id: int) -> Iterable[int]:
        """Return identifiers of every accepted friend of ``user_id``."""


class MessageStore(Protocol):
    """Durable owner of message records."""

    async def create_message(self, draft: MessageDraft) -> RelayMessage:
        """Persist ``draft`` as an unread, non-deleted message."""

    async def get_message(self, message_id: int) -> RelayMessage | None:
        """Return a message by id or ``None`` when it does not exist."""

    async def delete_message(self, message_id: int) -> bool:
        """Permanently remove a message, returning ``False`` if it was already gone."""

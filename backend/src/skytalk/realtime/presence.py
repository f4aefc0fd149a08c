"""In-memory presence registry mapping user ids to their live connection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from app.monitoring.metrics import presence_replacements_total, realtime_connections

from .ports import ConnectionHandle

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PresenceEntry:
    user_id: int
    handle: ConnectionHandle
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PresenceRegistry:
    """Single-process table of present users, at most one handle per user.

    Mutations are synchronous and never straddle an ``await``, so the event
    loop's run-to-completion semantics are enough to keep the table
    consistent without a lock. Broadcasts snapshot the handles first and
    tolerate entries changing while sends are suspended.
    """

    def __init__(self) -> None:
        self._entries: dict[int, PresenceEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def register(self, user_id: int, handle: ConnectionHandle) -> PresenceEntry | None:
        """Bind ``handle`` to ``user_id`` and return the entry it replaced, if any.

        The replaced connection is not closed; its later unregister is a no-op
        because it no longer owns the entry.
        """

        previous = self._entries.get(user_id)
        self._entries[user_id] = PresenceEntry(user_id=user_id, handle=handle)
        if previous is not None and previous.handle is not handle:
            presence_replacements_total.inc()
            logger.info(
                "Replaced presence entry for user %s (%s -> %s)",
                user_id,
                previous.handle.connection_id,
                handle.connection_id,
            )
        realtime_connections.labels("chat").set(len(self._entries))
        return previous

    def unregister(self, user_id: int, handle: ConnectionHandle | None = None) -> bool:
        """Remove the entry for ``user_id``.

        When ``handle`` is given the entry is removed only if it still belongs
        to that handle. Returns whether an entry was removed.
        """

        entry = self._entries.get(user_id)
        if entry is None:
            return False
        if handle is not None and entry.handle is not handle:
            return False
        del self._entries[user_id]
        realtime_connections.labels("chat").set(len(self._entries))
        return True

    def lookup(self, user_id: int) -> ConnectionHandle | None:
        entry = self._entries.get(user_id)
        return entry.handle if entry is not None else None

    def entry(self, user_id: int) -> PresenceEntry | None:
        return self._entries.get(user_id)

    def is_online(self, user_id: int) -> bool:
        return user_id in self._entries

    def online_user_ids(self) -> list[int]:
        return list(self._entries)

    async def send_to(self, user_id: int, event: str, data: dict[str, Any] | None = None) -> bool:
        """Deliver ``event`` to the user's current handle; ``False`` when absent or dead."""

        handle = self.lookup(user_id)
        if handle is None:
            return False
        return await handle.send(event, data)

    async def broadcast_except(
        self,
        user_id: int,
        event: str,
        data: dict[str, Any] | None = None,
        *,
        recipients: Iterable[int] | None = None,
    ) -> int:
        """Send ``event`` to every present user but ``user_id``; returns delivered count.

        Best effort: failed sends are skipped, nothing is retried.
        """

        if recipients is None:
            targets = [entry.handle for uid, entry in self._entries.items() if uid != user_id]
        else:
            targets = [
                self._entries[uid].handle
                for uid in set(recipients)
                if uid != user_id and uid in self._entries
            ]

        delivered = 0
        for handle in targets:
            if await handle.send(event, data):
                delivered += 1
        return delivered

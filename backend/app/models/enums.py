from __future__ import annotations

from enum import Enum

from skytalk.realtime.models import MessageType


class FriendRequestStatus(str, Enum):
    """Lifecycle states for friend relationships."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


__all__ = ["FriendRequestStatus", "MessageType"]

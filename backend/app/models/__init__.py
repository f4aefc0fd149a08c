"""Database models package."""

from .base import Base
from .chat import FriendLink, Message, User
from .enums import FriendRequestStatus, MessageType

__all__ = [
    "Base",
    "User",
    "FriendLink",
    "Message",
    "FriendRequestStatus",
    "MessageType",
]

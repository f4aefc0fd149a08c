"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, RefreshRequest, Token, UserCreate, UserRead
from .messages import ConversationSummary, MessageDeleted, MessageRead, UploadedFile
from .users import (
    FriendRead,
    FriendRequestCreate,
    FriendRequestList,
    FriendRequestRead,
    PublicUser,
    UserSearchResult,
)

__all__ = [
    "LoginRequest",
    "RefreshRequest",
    "Token",
    "UserCreate",
    "UserRead",
    "ConversationSummary",
    "MessageDeleted",
    "MessageRead",
    "UploadedFile",
    "FriendRead",
    "FriendRequestCreate",
    "FriendRequestList",
    "FriendRequestRead",
    "PublicUser",
    "UserSearchResult",
]

"""Realtime messaging core: presence, session lifecycle and the message relay."""

from .client import (  # noqa: F401
    ChatClient,
    CredentialExpiredError,
    HandshakeRejectedError,
    ReconnectExhaustedError,
    ReconnectPolicy,
)
from .connection import WebSocketConnection  # noqa: F401
from .errors import (  # noqa: F401
    AuthError,
    ExpiredCredentialError,
    ForbiddenError,
    InvalidCredentialError,
    NotFoundError,
    NotFriendsError,
    PayloadValidationError,
    RelayError,
    StoreUnavailableError,
)
from .models import MessageDraft, MessageType, RelayMessage, UserIdentity  # noqa: F401
from .presence import PresenceEntry, PresenceRegistry  # noqa: F401
from .relay import MessageRelay  # noqa: F401
from .sessions import ConnectionState, SessionManager  # noqa: F401

__all__ = [
    "ChatClient",
    "ReconnectPolicy",
    "ReconnectExhaustedError",
    "HandshakeRejectedError",
    "CredentialExpiredError",
    "WebSocketConnection",
    "RelayError",
    "AuthError",
    "ExpiredCredentialError",
    "InvalidCredentialError",
    "NotFriendsError",
    "ForbiddenError",
    "NotFoundError",
    "PayloadValidationError",
    "StoreUnavailableError",
    "MessageDraft",
    "MessageType",
    "RelayMessage",
    "UserIdentity",
    "PresenceEntry",
    "PresenceRegistry",
    "MessageRelay",
    "ConnectionState",
    "SessionManager",
]

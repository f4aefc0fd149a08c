"""Error taxonomy shared by the realtime session manager and relay."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for errors reported back to a connection as an ``error`` event."""

    code: str = "relay_error"
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self, event: str | None = None) -> dict[str, str | None]:
        return {"message": self.message, "code": self.code, "event": event}


class AuthError(RelayError):
    """Credential was rejected during the handshake or an HTTP call."""

    code = "auth_error"
    default_message = "Could not validate credentials"


class ExpiredCredentialError(AuthError):
    """Credential signature is valid but its lifetime has elapsed; refresh and retry."""

    code = "credential_expired"
    default_message = "Token has expired"


class InvalidCredentialError(AuthError):
    """Credential is malformed, forged or refers to an unknown identity."""

    code = "credential_invalid"


class NotFriendsError(RelayError):
    code = "not_friends"
    default_message = "You can only message friends"


class ForbiddenError(RelayError):
    code = "forbidden"
    default_message = "You are not allowed to perform this action"


class NotFoundError(RelayError):
    code = "not_found"
    default_message = "Resource not found"


class PayloadValidationError(RelayError):
    """Incoming frame does not match any known event or its schema."""

    code = "validation_error"
    default_message = "Malformed payload"


class StoreUnavailableError(RelayError):
    """Persistence backend failed or timed out."""

    code = "store_unavailable"
    default_message = "Message store is unavailable, please retry"

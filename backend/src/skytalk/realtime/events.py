"""Relay event names, frame codec and the client event tagged union."""

from __future__ import annotations

import json
from typing import Annotated, Any, Final, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    model_validator,
)

from .errors import PayloadValidationError
from .models import Attachment, MessageDraft, MessageType

# client -> server
SEND_MESSAGE: Final = "send-message"
TYPING: Final = "typing"
STOP_TYPING: Final = "stop-typing"
DELETE_MESSAGE: Final = "delete-message"

# server -> client
USER_ONLINE: Final = "user-online"
USER_OFFLINE: Final = "user-offline"
ONLINE_USERS: Final = "online-users"
RECEIVE_MESSAGE: Final = "receive-message"
MESSAGE_SENT: Final = "message-sent"
USER_TYPING: Final = "user-typing"
USER_STOP_TYPING: Final = "user-stop-typing"
MESSAGE_DELETED: Final = "message-deleted"
ERROR: Final = "error"

# keepalive, never routed through the relay
PING: Final = "ping"
PONG: Final = "pong"

CLIENT_EVENTS: Final = frozenset({SEND_MESSAGE, TYPING, STOP_TYPING, DELETE_MESSAGE})


class _ClientEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SendMessage(_ClientEvent):
    event: Literal["send-message"] = SEND_MESSAGE
    receiver_id: int = Field(alias="receiverId")
    body: str | None = Field(default=None, alias="message")
    message_type: MessageType = Field(default=MessageType.TEXT, alias="messageType")
    file_url: str | None = Field(default=None, alias="fileUrl")
    file_name: str | None = Field(default=None, alias="fileName")
    file_size: int | None = Field(default=None, alias="fileSize", ge=0)
    file_type: str | None = Field(default=None, alias="fileType")

    @model_validator(mode="after")
    def check_content(self, info: ValidationInfo) -> "SendMessage":
        body = self.body.strip() if self.body is not None else None
        self.body = body

        if self.message_type == MessageType.TEXT:
            if not body:
                raise ValueError("Text messages require a non-empty message")
            if self.file_url is not None:
                raise ValueError("Text messages cannot carry an attachment")
        elif not self.file_url:
            raise ValueError(f"{self.message_type.value} messages require fileUrl")

        max_length = (info.context or {}).get("max_body_length")
        if max_length and body and len(body) > max_length:
            raise ValueError(f"Message exceeds {max_length} characters")
        return self

    @property
    def attachment(self) -> Attachment | None:
        if self.message_type == MessageType.TEXT or not self.file_url:
            return None
        return Attachment(
            url=self.file_url,
            name=self.file_name,
            size=self.file_size,
            mime_type=self.file_type,
        )

    def to_draft(self, sender_id: int) -> MessageDraft:
        return MessageDraft(
            sender_id=sender_id,
            receiver_id=self.receiver_id,
            body=self.body or None,
            message_type=self.message_type,
            attachment=self.attachment,
        )


class Typing(_ClientEvent):
    event: Literal["typing"] = TYPING
    receiver_id: int = Field(alias="receiverId")


class StopTyping(_ClientEvent):
    event: Literal["stop-typing"] = STOP_TYPING
    receiver_id: int = Field(alias="receiverId")


class DeleteMessage(_ClientEvent):
    event: Literal["delete-message"] = DELETE_MESSAGE
    message_id: int = Field(alias="messageId")
    # Accepted for wire compatibility; participants are read from the store.
    receiver_id: int | None = Field(default=None, alias="receiverId")


RelayEvent = Annotated[
    Union[SendMessage, Typing, StopTyping, DeleteMessage],
    Field(discriminator="event"),
]

_relay_event_adapter: TypeAdapter[RelayEvent] = TypeAdapter(RelayEvent)


def encode_frame(event: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    frame: dict[str, Any] = {"event": event}
    if data is not None:
        frame["data"] = data
    return frame


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    """Decode a text frame into a dict, raising :class:`PayloadValidationError` otherwise."""

    try:
        frame = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise PayloadValidationError("Frame is not valid JSON") from exc
    if not isinstance(frame, dict):
        raise PayloadValidationError("Frame must be a JSON object")
    return frame


def _describe(exc: ValidationError) -> str:
    error = exc.errors(include_url=False)[0]
    location = ".".join(str(part) for part in error.get("loc", ()) if part not in CLIENT_EVENTS)
    message = error.get("msg", "invalid value")
    message = message.removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


def parse_client_event(frame: Any, *, max_body_length: int | None = None) -> RelayEvent:
    """Validate a decoded frame into one of the known client events."""

    if not isinstance(frame, dict):
        raise PayloadValidationError("Frame must be a JSON object")

    event = frame.get("event")
    if event not in CLIENT_EVENTS:
        raise PayloadValidationError(f"Unknown event: {event!r}")

    data = frame.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PayloadValidationError(f"Payload of {event} must be an object")

    try:
        return _relay_event_adapter.validate_python(
            {**data, "event": event},
            context={"max_body_length": max_body_length},
        )
    except ValidationError as exc:
        raise PayloadValidationError(_describe(exc)) from exc

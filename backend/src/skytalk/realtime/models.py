"""Value objects exchanged between the realtime core and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _assume_utc(value: datetime) -> datetime:
    # SQLite and MySQL DATETIME columns drop the offset; stored values are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class MessageType(str, Enum):
    """Kinds of content a private message can carry."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


@dataclass(frozen=True, slots=True)
class UserIdentity:
    """Authenticated user bound to a connection for its whole lifetime."""

    id: int
    username: str
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class Attachment:
    """Blob-store reference carried by image and file messages."""

    url: str
    name: str | None = None
    size: int | None = None
    mime_type: str | None = None


@dataclass(slots=True)
class MessageDraft:
    """Validated content of a message that has not been persisted yet."""

    sender_id: int
    receiver_id: int
    body: str | None
    message_type: MessageType = MessageType.TEXT
    attachment: Attachment | None = None


class Participant(BaseModel):
    """Public profile of a message sender or receiver."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: int
    username: str
    avatar: str | None = None


class RelayMessage(BaseModel):
    """Persisted message as it travels over the wire.

    Attachment metadata is flattened into the ``file*`` fields and is present
    only for non-text messages.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    sender_id: int = Field(alias="senderId")
    receiver_id: int = Field(alias="receiverId")
    sender: Participant | None = None
    receiver: Participant | None = None
    body: str | None = Field(default=None, alias="message")
    message_type: MessageType = Field(default=MessageType.TEXT, alias="messageType")
    file_url: str | None = Field(default=None, alias="fileUrl")
    file_name: str | None = Field(default=None, alias="fileName")
    file_size: int | None = Field(default=None, alias="fileSize")
    file_type: str | None = Field(default=None, alias="fileType")
    is_read: bool = Field(default=False, alias="isRead")
    is_deleted: bool = Field(default=False, alias="isDeleted")
    created_at: UtcDatetime = Field(alias="timestamp")

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

    def involves(self, user_id: int) -> bool:
        return user_id in (self.sender_id, self.receiver_id)

    def to_event(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

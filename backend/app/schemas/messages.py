"""Schemas related to private chat messages."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from skytalk.realtime.models import MessageType, Participant, RelayMessage, UtcDatetime

MessageRead = RelayMessage


class UploadedFile(BaseModel):
    """Blob-store reference to feed into the attachment fields of send-message."""

    model_config = ConfigDict(populate_by_name=True)

    file_url: str = Field(alias="fileUrl")
    file_name: str = Field(alias="fileName")
    file_size: int = Field(alias="fileSize")
    file_type: str | None = Field(default=None, alias="fileType")


class ConversationSummary(BaseModel):
    """Latest message and unread count for one conversation partner."""

    model_config = ConfigDict(populate_by_name=True)

    partner: Participant
    last_message: str = Field(alias="lastMessage")
    last_message_type: MessageType = Field(alias="lastMessageType")
    last_message_at: UtcDatetime = Field(alias="lastMessageTime")
    unread_count: int = Field(default=0, ge=0, alias="unreadCount")
    is_online: bool = Field(default=False, alias="isOnline")


class MessageDeleted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int = Field(alias="messageId")
    deleted_by: str = Field(alias="deletedBy")


__all__ = ["ConversationSummary", "MessageDeleted", "MessageRead", "UploadedFile"]

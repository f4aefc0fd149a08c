"""Private chat endpoints: uploads, conversation history and deletion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_user_or_404
from app.config import get_settings
from app.core.storage import resolve_path, store_upload
from app.database import get_db
from app.models import User
from app.schemas import ConversationSummary, MessageDeleted, MessageRead, UploadedFile
from app.services.friendships import are_friends, friend_ids
from app.services.messages import (
    fetch_conversation,
    latest_messages,
    mark_conversation_read,
    message_preview,
    serialize_message,
    unread_counts,
)
from app.services.realtime import RealtimeServices, get_realtime
from skytalk.realtime.models import Participant, UserIdentity

router = APIRouter(prefix="/chat", tags=["chat"])
settings = get_settings()


@router.post("/upload-image", response_model=UploadedFile, status_code=status.HTTP_201_CREATED)
async def upload_image(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
) -> UploadedFile:
    """Store an image for use in an ``image`` message."""

    stored = await store_upload(
        current_user.id, file, max_size=settings.max_image_upload_size, images_only=True
    )
    return UploadedFile(
        file_url=stored.url,
        file_name=stored.file_name,
        file_size=stored.file_size,
        file_type=stored.content_type,
    )


@router.post("/upload-file", response_model=UploadedFile, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
) -> UploadedFile:
    """Store an arbitrary file for use in a ``file`` message."""

    stored = await store_upload(current_user.id, file, max_size=settings.max_upload_size)
    return UploadedFile(
        file_url=stored.url,
        file_name=stored.file_name,
        file_size=stored.file_size,
        file_type=stored.content_type,
    )


@router.get("/files/{file_path:path}", response_class=FileResponse)
def download_file(file_path: str) -> FileResponse:
    return FileResponse(resolve_path(file_path))


@router.get("/conversation/{friend_id}", response_model=list[MessageRead])
def get_conversation(
    friend_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[MessageRead]:
    """Return the latest messages with a friend, then mark the friend's messages as read.

    The response reflects read flags as they were before this call.
    """

    get_user_or_404(friend_id, db)
    if not are_friends(db, current_user.id, friend_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view conversations with friends",
        )

    messages = [
        serialize_message(message)
        for message in fetch_conversation(
            db, current_user.id, friend_id, settings.conversation_history_limit
        )
    ]
    mark_conversation_read(db, current_user.id, friend_id)
    return messages


@router.get("/conversations", response_model=list[ConversationSummary])
def list_conversations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeServices = Depends(get_realtime),
) -> list[ConversationSummary]:
    """Return one summary per friend with message history, newest first."""

    unread = unread_counts(db, current_user.id)
    summaries: list[ConversationSummary] = []
    for message in latest_messages(db, current_user.id, friend_ids(db, current_user.id)):
        partner = message.receiver if message.sender_id == current_user.id else message.sender
        summaries.append(
            ConversationSummary(
                partner=Participant(id=partner.id, username=partner.username, avatar=partner.avatar_url),
                last_message=message_preview(message.message_type, message.body, message.file_name),
                last_message_type=message.message_type,
                last_message_at=message.created_at,
                unread_count=unread.get(partner.id, 0),
                is_online=realtime.registry.is_online(partner.id),
            )
        )
    return summaries


@router.delete("/messages/{message_id}", response_model=MessageDeleted)
async def delete_message(
    message_id: int,
    current_user: User = Depends(get_current_user),
    realtime: RealtimeServices = Depends(get_realtime),
) -> MessageDeleted:
    """Permanently delete a message; both participants are notified if connected."""

    identity = UserIdentity(
        id=current_user.id, username=current_user.username, avatar_url=current_user.avatar_url
    )
    # Relay errors are rendered by the application-level RelayError handler.
    message = await realtime.relay.delete_as(identity, message_id)
    deleted_by = "sender" if message.sender_id == current_user.id else "receiver"
    return MessageDeleted(message_id=message.id, deleted_by=deleted_by)

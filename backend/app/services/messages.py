"""Message persistence: conversation queries and the SQL message store."""

from __future__ import annotations

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.orm import Session, selectinload, sessionmaker

from app.models import Message, MessageType, User
from app.services.offload import run_db
from skytalk.realtime.models import MessageDraft, Participant, RelayMessage


def _participant(user: User | None) -> Participant | None:
    if user is None:
        return None
    return Participant(id=user.id, username=user.username, avatar=user.avatar_url)


def serialize_message(message: Message) -> RelayMessage:
    return RelayMessage(
        id=message.id,
        sender_id=message.sender_id,
        receiver_id=message.receiver_id,
        sender=_participant(message.sender),
        receiver=_participant(message.receiver),
        body=message.body,
        message_type=message.message_type,
        file_url=message.file_url,
        file_name=message.file_name,
        file_size=message.file_size,
        file_type=message.file_type,
        is_read=message.is_read,
        is_deleted=message.is_deleted,
        created_at=message.created_at,
    )


def message_preview(message_type: MessageType, body: str | None, file_name: str | None) -> str:
    if message_type == MessageType.IMAGE:
        return "📷 Image"
    if message_type == MessageType.FILE:
        return f"📎 {file_name or 'File'}"
    return body or ""


def _pair_clause(user_id: int, other_id: int):
    return or_(
        and_(Message.sender_id == user_id, Message.receiver_id == other_id),
        and_(Message.sender_id == other_id, Message.receiver_id == user_id),
    )


def create_message(db: Session, draft: MessageDraft) -> Message:
    attachment = draft.attachment
    message = Message(
        sender_id=draft.sender_id,
        receiver_id=draft.receiver_id,
        body=draft.body,
        message_type=draft.message_type,
        file_url=attachment.url if attachment else None,
        file_name=attachment.name if attachment else None,
        file_size=attachment.size if attachment else None,
        file_type=attachment.mime_type if attachment else None,
        is_read=False,
        is_deleted=False,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def get_message(db: Session, message_id: int) -> Message | None:
    """Return a live (non-deleted) message or ``None``."""

    stmt = (
        select(Message)
        .where(Message.id == message_id, Message.is_deleted.is_(False))
        .options(selectinload(Message.sender), selectinload(Message.receiver))
    )
    return db.execute(stmt).scalar_one_or_none()


def delete_message(db: Session, message_id: int) -> bool:
    """Permanently remove a message row."""

    result = db.execute(delete(Message).where(Message.id == message_id))
    db.commit()
    return bool(result.rowcount)


def fetch_conversation(db: Session, user_id: int, other_id: int, limit: int) -> list[Message]:
    """Return the ``limit`` most recent non-deleted messages of a pair, oldest first."""

    stmt = (
        select(Message)
        .where(_pair_clause(user_id, other_id), Message.is_deleted.is_(False))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .options(selectinload(Message.sender), selectinload(Message.receiver))
    )
    messages = list(db.execute(stmt).scalars())
    messages.reverse()
    return messages


def mark_conversation_read(db: Session, user_id: int, other_id: int) -> int:
    """Flag every unread message from ``other_id`` to ``user_id`` as read."""

    stmt = (
        update(Message)
        .where(
            Message.sender_id == other_id,
            Message.receiver_id == user_id,
            Message.is_read.is_(False),
            Message.is_deleted.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount or 0


def unread_counts(db: Session, user_id: int) -> dict[int, int]:
    stmt = (
        select(Message.sender_id, func.count(Message.id))
        .where(
            Message.receiver_id == user_id,
            Message.is_read.is_(False),
            Message.is_deleted.is_(False),
        )
        .group_by(Message.sender_id)
    )
    return {sender_id: count for sender_id, count in db.execute(stmt)}


def latest_messages(db: Session, user_id: int, partner_ids: list[int]) -> list[Message]:
    """Return the newest non-deleted message exchanged with each partner, newest first."""

    if not partner_ids:
        return []
    partner = case((Message.sender_id == user_id, Message.receiver_id), else_=Message.sender_id)
    # Ids grow with insertion order, so max(id) is the latest message of each pair.
    latest_ids = (
        select(func.max(Message.id))
        .where(
            or_(Message.sender_id == user_id, Message.receiver_id == user_id),
            partner.in_(partner_ids),
            Message.is_deleted.is_(False),
        )
        .group_by(partner)
    )
    stmt = (
        select(Message)
        .where(Message.id.in_(latest_ids))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .options(selectinload(Message.sender), selectinload(Message.receiver))
    )
    return list(db.execute(stmt).scalars())


class SqlMessageStore:
    """Message store used by the relay; each call runs in its own session."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    async def create_message(self, draft: MessageDraft) -> RelayMessage:
        return await run_db(
            self._session_factory,
            lambda db: serialize_message(create_message(db, draft)),
        )

    async def get_message(self, message_id: int) -> RelayMessage | None:
        def load(db: Session) -> RelayMessage | None:
            message = get_message(db, message_id)
            return serialize_message(message) if message is not None else None

        return await run_db(self._session_factory, load)

    async def delete_message(self, message_id: int) -> bool:
        return await run_db(self._session_factory, delete_message, message_id)

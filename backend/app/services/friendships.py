"""Friendship queries and the SQL-backed friendship oracle."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from app.models import FriendLink, FriendRequestStatus, User
from app.services.offload import run_db


def _pair_clause(user_id: int, other_id: int):
    return or_(
        and_(FriendLink.requester_id == user_id, FriendLink.addressee_id == other_id),
        and_(FriendLink.requester_id == other_id, FriendLink.addressee_id == user_id),
    )


def get_friend_link(db: Session, user_id: int, other_id: int) -> FriendLink | None:
    """Return the link between two users in either direction."""

    stmt = select(FriendLink).where(_pair_clause(user_id, other_id)).limit(1)
    return db.execute(stmt).scalars().first()


def are_friends(db: Session, user_id: int, other_id: int) -> bool:
    if user_id == other_id:
        return False
    stmt = (
        select(FriendLink.id)
        .where(FriendLink.status == FriendRequestStatus.ACCEPTED, _pair_clause(user_id, other_id))
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def _accepted_links(db: Session, user_id: int, *, load_users: bool = False) -> list[FriendLink]:
    stmt = select(FriendLink).where(
        FriendLink.status == FriendRequestStatus.ACCEPTED,
        or_(FriendLink.requester_id == user_id, FriendLink.addressee_id == user_id),
    )
    if load_users:
        stmt = stmt.options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
    return list(db.execute(stmt).scalars())


def friend_ids(db: Session, user_id: int) -> list[int]:
    return [
        link.addressee_id if link.requester_id == user_id else link.requester_id
        for link in _accepted_links(db, user_id)
    ]


def list_friends(db: Session, user_id: int) -> list[User]:
    friends = [link.other_party(user_id) for link in _accepted_links(db, user_id, load_users=True)]
    friends.sort(key=lambda user: user.username.lower())
    return friends


class SqlFriendshipOracle:
    """Answers friendship questions for the relay from the ``friend_links`` table."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    async def are_friends(self, user_id: int, other_id: int) -> bool:
        return await run_db(self._session_factory, are_friends, user_id, other_id)

    async def friend_ids(self, user_id: int) -> Iterable[int]:
        return await run_db(self._session_factory, friend_ids, user_id)

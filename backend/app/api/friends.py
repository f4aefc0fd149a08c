"""Friend search, requests and friendship management endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user, get_user_or_404
from app.config import get_settings
from app.database import get_db
from app.models import FriendLink, FriendRequestStatus, User
from app.schemas import (
    FriendRead,
    FriendRequestCreate,
    FriendRequestList,
    FriendRequestRead,
    UserSearchResult,
)
from app.services.friendships import friend_ids, get_friend_link, list_friends
from app.services.realtime import RealtimeServices, get_realtime

router = APIRouter(prefix="/friends", tags=["friends"])
settings = get_settings()


def _load_request(request_id: int, db: Session) -> FriendLink:
    stmt = (
        select(FriendLink)
        .where(FriendLink.id == request_id)
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
    )
    link = db.execute(stmt).scalar_one_or_none()
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    return link


def _pending_for(link: FriendLink) -> None:
    if link.status != FriendRequestStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Friend request is not pending")


@router.get("/search", response_model=list[UserSearchResult])
def search_users(
    query: str = Query(..., min_length=1, max_length=64),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[UserSearchResult]:
    """Find users by username or email, excluding yourself and existing friends."""

    excluded = set(friend_ids(db, current_user.id))
    excluded.add(current_user.id)
    pattern = f"%{query.strip().lower()}%"
    stmt = (
        select(User)
        .where(
            or_(func.lower(User.username).like(pattern), func.lower(User.email).like(pattern)),
            User.id.not_in(excluded),
        )
        .order_by(User.username)
        .limit(settings.friend_search_limit)
    )
    users = list(db.execute(stmt).scalars())

    pending_stmt = select(FriendLink).where(
        FriendLink.status == FriendRequestStatus.PENDING,
        or_(FriendLink.requester_id == current_user.id, FriendLink.addressee_id == current_user.id),
    )
    pending: dict[int, tuple[str, int]] = {}
    for link in db.execute(pending_stmt).scalars():
        if link.requester_id == current_user.id:
            pending[link.addressee_id] = ("outgoing", link.id)
        else:
            pending[link.requester_id] = ("incoming", link.id)

    results: list[UserSearchResult] = []
    for user in users:
        direction, request_id = pending.get(user.id, (None, None))
        results.append(
            UserSearchResult(
                id=user.id,
                username=user.username,
                avatar_url=user.avatar_url,
                pending_request=direction,
                request_id=request_id,
            )
        )
    return results


@router.post("/request", response_model=FriendRequestRead, status_code=status.HTTP_201_CREATED)
def send_friend_request(
    payload: FriendRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendLink:
    """Send a friend request to another user."""

    if payload.receiver_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot add yourself as a friend")
    get_user_or_404(payload.receiver_id, db)

    existing = get_friend_link(db, current_user.id, payload.receiver_id)
    if existing is not None:
        if existing.status == FriendRequestStatus.ACCEPTED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already friends")
        if existing.status == FriendRequestStatus.PENDING:
            detail = (
                "Friend request already sent"
                if existing.requester_id == current_user.id
                else "This user has already sent you a friend request"
            )
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
        db.delete(existing)
        db.flush()

    link = FriendLink(
        requester_id=current_user.id,
        addressee_id=payload.receiver_id,
        status=FriendRequestStatus.PENDING,
    )
    db.add(link)
    db.commit()
    return _load_request(link.id, db)


@router.get("/requests", response_model=FriendRequestList)
def list_friend_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestList:
    """Return incoming and outgoing pending friend requests."""

    stmt = (
        select(FriendLink)
        .where(
            FriendLink.status == FriendRequestStatus.PENDING,
            or_(FriendLink.requester_id == current_user.id, FriendLink.addressee_id == current_user.id),
        )
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
        .order_by(FriendLink.created_at.desc(), FriendLink.id.desc())
    )
    result = FriendRequestList()
    for link in db.execute(stmt).scalars():
        entry = FriendRequestRead.model_validate(link)
        if link.addressee_id == current_user.id:
            result.incoming.append(entry)
        else:
            result.outgoing.append(entry)
    return result


@router.post("/requests/{request_id}/accept", response_model=FriendRequestRead)
def accept_friend_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendLink:
    link = _load_request(request_id, db)
    if link.addressee_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your friend request")
    _pending_for(link)
    link.status = FriendRequestStatus.ACCEPTED
    link.responded_at = datetime.now(timezone.utc)
    db.commit()
    return _load_request(request_id, db)


@router.post("/requests/{request_id}/reject", response_model=FriendRequestRead)
def reject_friend_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendLink:
    link = _load_request(request_id, db)
    if link.addressee_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your friend request")
    _pending_for(link)
    link.status = FriendRequestStatus.DECLINED
    link.responded_at = datetime.now(timezone.utc)
    db.commit()
    return _load_request(request_id, db)


@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_friend_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    link = _load_request(request_id, db)
    if link.requester_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your friend request")
    _pending_for(link)
    db.delete(link)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/list", response_model=list[FriendRead])
def list_friends_endpoint(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeServices = Depends(get_realtime),
) -> list[FriendRead]:
    """Return accepted friends with their live presence."""

    return [
        FriendRead(
            id=friend.id,
            username=friend.username,
            avatar_url=friend.avatar_url,
            is_online=realtime.registry.is_online(friend.id),
        )
        for friend in list_friends(db, current_user.id)
    ]


@router.delete("/{friend_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_friend(
    friend_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    """Remove the friendship edge; further messages between the pair are refused."""

    link = get_friend_link(db, current_user.id, friend_id)
    if link is None or link.status != FriendRequestStatus.ACCEPTED:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend not found")
    db.delete(link)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)

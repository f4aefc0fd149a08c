"""Schemas related to user profiles and friendships."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import FriendRequestStatus
from skytalk.realtime.models import UtcDatetime


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    avatar_url: str | None = None


class FriendRead(PublicUser):
    """Friend entry annotated with live presence."""

    is_online: bool = False


class UserSearchResult(PublicUser):
    """Search hit with the direction of any pending request between the users."""

    pending_request: Literal["incoming", "outgoing"] | None = None
    request_id: int | None = None


class FriendRequestRead(BaseModel):
    """Serialized friend request including participants."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    requester: PublicUser
    addressee: PublicUser
    status: FriendRequestStatus
    created_at: UtcDatetime
    responded_at: UtcDatetime | None = None


class FriendRequestList(BaseModel):
    """Categorized friend requests for convenience in the UI."""

    incoming: list[FriendRequestRead] = Field(default_factory=list)
    outgoing: list[FriendRequestRead] = Field(default_factory=list)


class FriendRequestCreate(BaseModel):
    """Payload for sending a friend request."""

    receiver_id: int = Field(..., description="Identifier of the user to befriend")

"""Schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr


class UserBase(BaseModel):
    """Base fields shared across user schemas."""

    username: constr(strip_whitespace=True, pattern=r"^[A-Za-z0-9_.-]+$", min_length=3, max_length=64) = Field(
        ..., description="Unique username consisting of 3-64 letters, digits, '.', '_' or '-'"
    )
    email: constr(strip_whitespace=True, to_lower=True, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255) = Field(
        ..., description="Unique e-mail address"
    )


class UserCreate(UserBase):
    """Payload for creating a new user via registration."""

    password: constr(min_length=8, max_length=128) = Field(
        ..., description="Plain text password that will be hashed before storing"
    )


class UserRead(UserBase):
    """Representation of a user returned from the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    avatar_url: str | None = None
    created_at: datetime


class LoginRequest(BaseModel):
    """Payload for user login."""

    login: constr(strip_whitespace=True, min_length=3, max_length=255) = Field(
        ..., description="Username or e-mail address"
    )
    password: constr(min_length=8, max_length=128) = Field(..., description="User password")


class Token(BaseModel):
    """Token pair returned after successful authentication."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type, always 'bearer'")
    refresh_token: str | None = Field(default=None, description="Opaque single-use refresh token")
    expires_in: int | None = Field(
        default=None,
        description="Number of seconds until the access token expires",
    )
    user: UserRead | None = None


class RefreshRequest(BaseModel):
    """Payload for requesting a new access token using a refresh token."""

    refresh_token: str = Field(..., min_length=1, description="Refresh token issued at login")

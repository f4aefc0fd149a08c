"""Security helpers for password hashing and token management."""

from __future__ import annotations

import hashlib
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import HTTPException, status
from passlib.context import CryptContext

from app.config import get_settings
from app.services.cache import get_cache
from skytalk.realtime.errors import ExpiredCredentialError, InvalidCredentialError

settings = get_settings()

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"


@dataclass(slots=True)
class RefreshTokenData:
    """Structured data extracted from a stored refresh token."""

    token_id: str
    subject: str
    expires_at: datetime


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hashed counterpart."""

    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for storing in the database."""

    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT access token with an expiration time."""

    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": ACCESS_TOKEN_TYPE})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> Dict[str, Any]:
    """Check signature, expiry and token class without touching any store."""

    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise ExpiredCredentialError() from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidCredentialError() from exc
    if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        raise InvalidCredentialError()
    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT access token for HTTP callers."""

    try:
        return verify_access_token(token)
    except (ExpiredCredentialError, InvalidCredentialError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message) from exc


def _refresh_cache_key(token_id: str) -> str:
    return f"auth:refresh_token:{token_id}"


def _hash_refresh_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def create_refresh_token(subject: str) -> tuple[str, int]:
    """Generate and persist a refresh token bound to a subject."""

    token_id = secrets.token_urlsafe(16)
    token_secret = secrets.token_urlsafe(32)
    lifetime = timedelta(minutes=max(int(settings.refresh_token_expire_minutes), 1))
    expires_at = datetime.now(timezone.utc) + lifetime

    payload = {
        "sub": subject,
        "hash": _hash_refresh_secret(token_secret),
        "exp": int(expires_at.timestamp()),
    }
    get_cache().set(_refresh_cache_key(token_id), json.dumps(payload), int(lifetime.total_seconds()))
    return f"{token_id}.{token_secret}", int(lifetime.total_seconds())


def validate_refresh_token(token: str, *, revoke: bool = False) -> RefreshTokenData:
    """Validate a refresh token and optionally revoke it.

    Raises :class:`ExpiredCredentialError` for lapsed tokens and
    :class:`InvalidCredentialError` for anything unknown or tampered with,
    including tokens that were already rotated.
    """

    parts = token.split(".", 1)
    if len(parts) != 2:
        raise InvalidCredentialError("Malformed refresh token")
    token_id, token_secret = parts
    cache_key = _refresh_cache_key(token_id)
    cache = get_cache()
    cached = cache.get(cache_key)
    if cached is None:
        raise InvalidCredentialError("Refresh token not found")

    try:
        payload = json.loads(cached)
    except json.JSONDecodeError as exc:
        cache.delete(cache_key)
        raise InvalidCredentialError("Corrupted refresh token") from exc

    expected_hash = payload.get("hash")
    if not expected_hash or not secrets.compare_digest(expected_hash, _hash_refresh_secret(token_secret)):
        cache.delete(cache_key)
        raise InvalidCredentialError("Refresh token signature mismatch")

    exp_timestamp = payload.get("exp")
    if not isinstance(exp_timestamp, (int, float)):
        cache.delete(cache_key)
        raise InvalidCredentialError("Refresh token is missing expiration")

    expires_at = datetime.fromtimestamp(exp_timestamp, tz=timezone.utc)
    if expires_at <= datetime.now(timezone.utc):
        cache.delete(cache_key)
        raise ExpiredCredentialError("Refresh token expired")

    if revoke:
        cache.delete(cache_key)

    return RefreshTokenData(token_id=token_id, subject=str(payload.get("sub")), expires_at=expires_at)

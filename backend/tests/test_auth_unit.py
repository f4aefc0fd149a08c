"""Unit tests for authentication helpers and endpoints."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from app.api.auth import login_user, refresh_access_token
from app.api.deps import get_user_from_token
from app.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    validate_refresh_token,
    verify_access_token,
)
from app.models import User
from app.schemas import LoginRequest, RefreshRequest
from app.services.identity import TokenIdentityVerifier
from skytalk.realtime.errors import ExpiredCredentialError, InvalidCredentialError


@pytest.fixture()
def user(db_session):
    db_user = User(
        username="tester",
        email="tester@example.com",
        hashed_password=get_password_hash("supersecret"),
    )
    db_session.add(db_user)
    db_session.commit()
    return db_user


def test_login_user_returns_token_pair(db_session, user):
    """Successful login should return an access and a refresh token."""

    token = login_user(LoginRequest(login="tester", password="supersecret"), db_session)

    assert token.token_type == "bearer"
    assert token.access_token and token.refresh_token
    assert token.user is not None and token.user.username == "tester"


def test_login_user_accepts_email(db_session, user):
    token = login_user(LoginRequest(login="Tester@Example.com", password="supersecret"), db_session)

    assert token.user.id == user.id


def test_login_user_rejects_invalid_credentials(db_session, user):
    """Invalid credentials must raise an HTTP 401 error."""

    with pytest.raises(HTTPException) as exc:
        login_user(LoginRequest(login="tester", password="wrong-password"), db_session)

    assert exc.value.status_code == 401
    assert "Incorrect login" in exc.value.detail


def test_get_user_from_token(db_session, user):
    """Tokens should resolve to existing users."""

    token = create_access_token({"sub": str(user.id)})
    resolved = get_user_from_token(token, db_session)

    assert resolved.id == user.id
    assert resolved.username == user.username


def test_get_user_from_token_invalid_payload(db_session):
    """Invalid tokens must result in a 401 error."""

    with pytest.raises(HTTPException) as exc:
        get_user_from_token("invalid-token", db_session)

    assert exc.value.status_code == 401
    assert "Could not validate credentials" in exc.value.detail


def test_expired_access_token_is_distinguished():
    token = create_access_token({"sub": "1"}, expires_delta=timedelta(seconds=-5))

    with pytest.raises(ExpiredCredentialError) as exc:
        verify_access_token(token)

    assert exc.value.code == "credential_expired"


def test_refresh_token_cannot_be_used_as_access_token():
    token, _ = create_refresh_token("1")

    with pytest.raises(InvalidCredentialError):
        verify_access_token(token)


def test_refresh_token_is_single_use(db_session, user):
    token, ttl = create_refresh_token(str(user.id))
    assert ttl > 0

    rotated = refresh_access_token(RefreshRequest(refresh_token=token), db_session)
    assert rotated.refresh_token != token

    with pytest.raises(HTTPException) as exc:
        refresh_access_token(RefreshRequest(refresh_token=token), db_session)
    assert exc.value.status_code == 401


def test_tampered_refresh_token_is_rejected():
    token, _ = create_refresh_token("7")
    token_id, _ = token.split(".", 1)

    with pytest.raises(InvalidCredentialError):
        validate_refresh_token(f"{token_id}.forged")
    with pytest.raises(InvalidCredentialError):
        validate_refresh_token(token)
    with pytest.raises(InvalidCredentialError):
        validate_refresh_token("no-separator")


@pytest.mark.anyio("asyncio")
async def test_token_identity_verifier(session_factory, user):
    verifier = TokenIdentityVerifier(session_factory)

    identity = await verifier.authenticate(create_access_token({"sub": str(user.id)}))
    assert identity.id == user.id
    assert identity.username == "tester"

    with pytest.raises(InvalidCredentialError):
        await verifier.authenticate(create_access_token({"sub": "9999"}))
    with pytest.raises(InvalidCredentialError):
        await verifier.authenticate(create_access_token({"sub": "not-a-number"}))
    with pytest.raises(ExpiredCredentialError):
        await verifier.authenticate(
            create_access_token({"sub": str(user.id)}, expires_delta=timedelta(minutes=-1))
        )

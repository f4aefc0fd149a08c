"""Bearer credential verification for realtime connections."""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from app.core.security import verify_access_token
from app.models import User
from app.services.offload import run_db
from skytalk.realtime.errors import InvalidCredentialError
from skytalk.realtime.models import UserIdentity


def _load_identity(db: Session, user_id: int) -> UserIdentity | None:
    user = db.get(User, user_id)
    if user is None:
        return None
    return UserIdentity(id=user.id, username=user.username, avatar_url=user.avatar_url)


class TokenIdentityVerifier:
    """Resolves access tokens to the identity of an existing user."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    async def authenticate(self, credential: str) -> UserIdentity:
        payload = verify_access_token(credential)
        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            raise InvalidCredentialError() from None

        identity = await run_db(self._session_factory, _load_identity, user_id)
        if identity is None:
            raise InvalidCredentialError()
        return identity

"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.core import security
from app.database import get_db
from app.main import app
from app.models import Base, FriendLink, FriendRequestStatus, User
from skytalk.realtime.errors import (
    ExpiredCredentialError,
    InvalidCredentialError,
    StoreUnavailableError,
)
from skytalk.realtime.models import MessageDraft, RelayMessage, UserIdentity
from skytalk.realtime.presence import PresenceRegistry
from skytalk.realtime.relay import MessageRelay
from skytalk.realtime.sessions import SessionManager

security.pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory) -> Iterator[TestClient]:
    """Yield a TestClient whose HTTP and realtime layers share the test database."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.session_factory = None


@pytest.fixture()
def make_user(session_factory):
    """Create a user and return ``(id, access_token)``."""

    def factory(username: str) -> tuple[int, str]:
        with session_factory() as session:
            user = User(
                username=username,
                email=f"{username}@example.com",
                hashed_password=security.get_password_hash("supersecret"),
            )
            session.add(user)
            session.commit()
            user_id = user.id
        return user_id, security.create_access_token({"sub": str(user_id)})

    return factory


@pytest.fixture()
def befriend(session_factory):
    """Insert an accepted friendship edge between two users."""

    def factory(user_id: int, other_id: int) -> None:
        with session_factory() as session:
            session.add(
                FriendLink(
                    requester_id=user_id,
                    addressee_id=other_id,
                    status=FriendRequestStatus.ACCEPTED,
                )
            )
            session.commit()

    return factory


class FakeConnection:
    """Connection handle recording every event sent through it."""

    def __init__(self, connection_id: str, *, alive: bool = True) -> None:
        self.connection_id = connection_id
        self.alive = alive
        self.sent: list[tuple[str, dict[str, Any] | None]] = []

    async def send(self, event: str, data: dict[str, Any] | None = None) -> bool:
        if not self.alive:
            return False
        self.sent.append((event, data))
        return True

    def events(self, name: str | None = None) -> list[tuple[str, dict[str, Any] | None]]:
        if name is None:
            return list(self.sent)
        return [entry for entry in self.sent if entry[0] == name]

    def names(self) -> list[str]:
        return [event for event, _ in self.sent]


@pytest.fixture()
def fake_connection():
    return FakeConnection


class InMemoryFriendships:
    def __init__(self, *pairs: tuple[int, int]) -> None:
        self.edges: set[frozenset[int]] = {frozenset(pair) for pair in pairs}
        self.calls = 0

    def add(self, user_id: int, other_id: int) -> None:
        self.edges.add(frozenset((user_id, other_id)))

    def remove(self, user_id: int, other_id: int) -> None:
        self.edges.discard(frozenset((user_id, other_id)))

    async def are_friends(self, user_id: int, other_id: int) -> bool:
        self.calls += 1
        return user_id != other_id and frozenset((user_id, other_id)) in self.edges

    async def friend_ids(self, user_id: int) -> list[int]:
        return sorted(uid for edge in self.edges if user_id in edge for uid in edge if uid != user_id)


class InMemoryMessageStore:
    """Message store keeping records in a dict; ``fail`` simulates an outage."""

    def __init__(self) -> None:
        self.messages: dict[int, RelayMessage] = {}
        self.fail = False
        self._next_id = 1

    def _check(self) -> None:
        if self.fail:
            raise StoreUnavailableError()

    async def create_message(self, draft: MessageDraft) -> RelayMessage:
        self._check()
        attachment = draft.attachment
        message = RelayMessage(
            id=self._next_id,
            sender_id=draft.sender_id,
            receiver_id=draft.receiver_id,
            body=draft.body,
            message_type=draft.message_type,
            file_url=attachment.url if attachment else None,
            file_name=attachment.name if attachment else None,
            file_size=attachment.size if attachment else None,
            file_type=attachment.mime_type if attachment else None,
            created_at=datetime.now(timezone.utc),
        )
        self.messages[message.id] = message
        self._next_id += 1
        return message

    async def get_message(self, message_id: int) -> RelayMessage | None:
        self._check()
        return self.messages.get(message_id)

    async def delete_message(self, message_id: int) -> bool:
        self._check()
        return self.messages.pop(message_id, None) is not None


class StaticVerifier:
    """Maps literal tokens to identities."""

    def __init__(self, tokens: dict[str, UserIdentity]) -> None:
        self.tokens = tokens

    async def authenticate(self, credential: str) -> UserIdentity:
        if credential == "expired":
            raise ExpiredCredentialError()
        identity = self.tokens.get(credential)
        if identity is None:
            raise InvalidCredentialError()
        return identity


ALICE = UserIdentity(id=1, username="alice")
BOB = UserIdentity(id=2, username="bob")
CAROL = UserIdentity(id=3, username="carol")


@dataclass
class RealtimeHarness:
    registry: PresenceRegistry
    sessions: SessionManager
    relay: MessageRelay
    friendships: InMemoryFriendships
    store: InMemoryMessageStore

    async def connect(self, identity: UserIdentity, connection_id: str | None = None):
        handle = FakeConnection(connection_id or f"{identity.username}-conn")
        state = await self.sessions.open(identity, handle)
        return state, handle


@pytest.fixture()
def harness() -> RealtimeHarness:
    """Realtime core wired to in-memory collaborators; alice and bob are friends."""

    registry = PresenceRegistry()
    friendships = InMemoryFriendships((ALICE.id, BOB.id))
    store = InMemoryMessageStore()
    verifier = StaticVerifier({"alice-token": ALICE, "bob-token": BOB, "carol-token": CAROL})
    sessions = SessionManager(registry, verifier, friendships, typing_ttl_seconds=0.05)
    relay = MessageRelay(sessions, friendships, store, max_body_length=50)
    return RealtimeHarness(registry, sessions, relay, friendships, store)

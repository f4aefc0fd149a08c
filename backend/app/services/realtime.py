"""Construction and lookup of the realtime services owned by the application."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.websockets import WebSocket
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings, get_settings
from app.services.friendships import SqlFriendshipOracle
from app.services.identity import TokenIdentityVerifier
from app.services.messages import SqlMessageStore
from skytalk.realtime.presence import PresenceRegistry
from skytalk.realtime.relay import MessageRelay
from skytalk.realtime.sessions import SessionManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RealtimeServices:
    registry: PresenceRegistry
    sessions: SessionManager
    relay: MessageRelay


def build_realtime_services(
    session_factory: sessionmaker[Session] | None = None,
    settings: Settings | None = None,
) -> RealtimeServices:
    settings = settings or get_settings()
    registry = PresenceRegistry()
    friendships = SqlFriendshipOracle(session_factory)
    sessions = SessionManager(
        registry,
        TokenIdentityVerifier(session_factory),
        friendships,
        typing_ttl_seconds=settings.typing_indicator_ttl_seconds,
    )
    relay = MessageRelay(
        sessions,
        friendships,
        SqlMessageStore(session_factory),
        max_body_length=settings.chat_message_max_length,
        store_timeout_seconds=settings.relay_store_timeout_seconds,
    )
    return RealtimeServices(registry=registry, sessions=sessions, relay=relay)


async def startup_realtime(app: FastAPI) -> None:
    session_factory = getattr(app.state, "session_factory", None)
    app.state.realtime = build_realtime_services(session_factory)
    logger.info("Realtime services started")


async def shutdown_realtime(app: FastAPI) -> None:
    services: RealtimeServices | None = getattr(app.state, "realtime", None)
    if services is None:
        return
    await services.sessions.shutdown()
    app.state.realtime = None
    logger.info("Realtime services stopped")


def get_realtime(request: Request) -> RealtimeServices:
    """FastAPI dependency returning the services of the running application."""

    return request.app.state.realtime


def get_realtime_for_websocket(websocket: WebSocket) -> RealtimeServices:
    return websocket.app.state.realtime

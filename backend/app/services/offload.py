"""Run blocking ORM work off the event loop for the realtime adapters."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

import anyio
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.database import session_scope
from skytalk.realtime.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_db(
    factory: sessionmaker[Session] | None,
    func: Callable[..., T],
    *args: object,
) -> T:
    """Call ``func(db, *args)`` in a worker thread with its own short-lived session.

    Database failures surface as :class:`StoreUnavailableError`. When the
    awaiting task is cancelled (e.g. by a relay timeout) the thread is
    abandoned and finishes on its own.
    """

    def call() -> T:
        with session_scope(factory) as db:
            return func(db, *args)

    try:
        return await anyio.to_thread.run_sync(call, abandon_on_cancel=True)
    except SQLAlchemyError as exc:
        logger.warning("Database call %s failed: %s", getattr(func, "__name__", func), exc)
        raise StoreUnavailableError() from exc

"""
gangledger.database.engine — Database Connection & Async Helper
================================================================

The bot and the API both run on an ``asyncio`` event loop, while every
ledger service is plain synchronous SQLAlchemy.  Calling a service
directly from a coroutine would stall the loop until the query returns,
so async callers go through :func:`run_db`, which ships the call to a
worker thread::

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async Cog method:
    member = await run_db(award_member_points, engine, guild_id=..., ...)

The pool size is the ceiling on concurrent store connections: rollover and
aggregation never open more than ``pool_size + max_overflow`` sessions.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from gangledger.database.models import Base
from gangledger.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_POOL_SIZE = 5
DEFAULT_MAX_OVERFLOW = 10


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    Pool sizing comes from ``DB_POOL_SIZE`` / ``DB_MAX_OVERFLOW`` (defaults
    5 and 10).  ``pool_timeout=10`` makes an exhausted pool fail fast
    instead of hanging a message handler.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    pool_size = int(os.getenv("DB_POOL_SIZE", DEFAULT_POOL_SIZE))
    max_overflow = int(os.getenv("DB_MAX_OVERFLOW", DEFAULT_MAX_OVERFLOW))

    engine = create_engine(
        url,
        echo=False,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info(
        "Database engine created → %s (pool %d+%d)",
        engine.url.host, pool_size, max_overflow,
    )
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`gangledger.database.models`.

    Safe to call on every startup.  Production schemas are managed by
    Alembic (``alembic upgrade head``); this is the dev/test safety net.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Connectivity failures are re-raised as :class:`StoreUnavailableError`
    after the rollback, so nothing is ever half-written.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        raise StoreUnavailableError(str(exc.orig or exc)) from exc
    except DBAPIError as exc:
        session.rollback()
        if exc.connection_invalidated:
            raise StoreUnavailableError(str(exc.orig or exc)) from exc
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** ledger function on a background thread.

    Every store call made from a cog or a route goes through here::

        summary = await run_db(reset_weekly, engine, guild_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)

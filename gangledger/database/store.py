"""
gangledger.database.store — Per-entity atomic read-modify-write
================================================================

Every mutation of a member or gang row goes through
:meth:`EntityStore.atomically`, which gives three guarantees:

1. **In-process serialization.**  A keyed lock per entity means two
   worker threads handling messages from the same author never interleave
   their read-check-write.
2. **One transaction.**  The callback runs inside a single session; either
   everything it touched is committed or nothing is.
3. **Cross-process safety.**  Rows are read ``FOR UPDATE`` on PostgreSQL
   and carry a ``version_id_col``.  A concurrent writer surfaces as
   ``StaleDataError`` (or ``IntegrityError`` for a racing insert) and the
   callback is retried on fresh state, at most ``max_retries`` times,
   before :class:`ConflictError` is raised.

The module also holds the typed query helpers the services share, so no
caller builds filters by hand.
"""

from __future__ import annotations

import logging
import time
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from threading import Lock
from typing import TypeVar

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from gangledger.constants import MAX_CONFLICT_RETRIES
from gangledger.database.engine import get_session
from gangledger.database.models import Group, Member
from gangledger.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Keyed locks
# ---------------------------------------------------------------------------
class KeyedLocks:
    """A lock per entity key.  Thread-safe; idle locks are discarded."""

    def __init__(self) -> None:
        self._guard = Lock()
        # key → (lock, number of holders + waiters)
        self._locks: dict[str, tuple[Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[key] = (lock, users + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def member_key(guild_id: str, member_id: str) -> str:
    return f"member:{guild_id}:{member_id}"


def group_key(guild_id: str, group_id: str) -> str:
    return f"group:{guild_id}:{group_id}"


# ---------------------------------------------------------------------------
# EntityStore
# ---------------------------------------------------------------------------
class EntityStore:
    """Transactional access to one database, shared by every service."""

    def __init__(
        self,
        engine: Engine,
        *,
        max_retries: int = MAX_CONFLICT_RETRIES,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.engine = engine
        self.max_retries = max_retries
        self._locks = locks or KeyedLocks()

    def atomically(self, key: str, fn: Callable[[Session], T]) -> T:
        """Run ``fn(session)`` as one serialized, all-or-nothing unit.

        *fn* may run more than once; it must derive everything from what it
        reads through the session it is given.
        """
        with self._locks.hold(key):
            for attempt in range(1, self.max_retries + 1):
                try:
                    with get_session(self.engine) as session:
                        return fn(session)
                except (StaleDataError, IntegrityError) as exc:
                    logger.warning(
                        "Write conflict on %s (attempt %d/%d): %s",
                        key, attempt, self.max_retries, exc.__class__.__name__,
                    )
                    time.sleep(0.01 * attempt)
        raise ConflictError(key, self.max_retries)

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Read-only session (committed on exit, never written by callers)."""
        with get_session(self.engine) as session:
            yield session


_stores: weakref.WeakKeyDictionary[Engine, EntityStore] = weakref.WeakKeyDictionary()
_stores_guard = Lock()


def store_for(engine: Engine) -> EntityStore:
    """Return the shared :class:`EntityStore` for *engine*.

    Sharing matters: the in-process locks only serialize callers that use
    the same store.
    """
    with _stores_guard:
        store = _stores.get(engine)
        if store is None:
            store = EntityStore(engine)
            _stores[engine] = store
        return store


# ---------------------------------------------------------------------------
# Typed queries
# ---------------------------------------------------------------------------
def find_member(
    session: Session, guild_id: str, member_id: str, *, for_update: bool = False
) -> Member | None:
    stmt = select(Member).where(
        Member.guild_id == guild_id, Member.member_id == member_id
    )
    if for_update:
        stmt = stmt.with_for_update()
    return session.scalar(stmt)


def find_group(
    session: Session, guild_id: str, group_id: str, *, for_update: bool = False
) -> Group | None:
    stmt = select(Group).where(Group.guild_id == guild_id, Group.group_id == group_id)
    if for_update:
        stmt = stmt.with_for_update()
    return session.scalar(stmt)


def list_group_ids(session: Session, guild_id: str) -> list[str]:
    return list(session.scalars(
        select(Group.group_id).where(Group.guild_id == guild_id).order_by(Group.id)
    ))


def list_member_ids(session: Session, guild_id: str) -> list[str]:
    return list(session.scalars(
        select(Member.member_id).where(Member.guild_id == guild_id).order_by(Member.id)
    ))


def list_member_ids_in_group(session: Session, guild_id: str, group_id: str) -> list[str]:
    return list(session.scalars(
        select(Member.member_id)
        .where(Member.guild_id == guild_id, Member.current_group_id == group_id)
        .order_by(Member.id)
    ))


def sum_group_member_points(
    session: Session, guild_id: str, group_id: str
) -> tuple[int, int, int]:
    """Return ``(points, weekly_points, member_count)`` over current members."""
    row = session.execute(
        select(
            func.coalesce(func.sum(Member.points), 0),
            func.coalesce(func.sum(Member.weekly_points), 0),
            func.count(Member.id),
        ).where(Member.guild_id == guild_id, Member.current_group_id == group_id)
    ).one()
    return int(row[0]), int(row[1]), int(row[2])


def count_group_members(session: Session, guild_id: str, group_id: str) -> int:
    return session.scalar(
        select(func.count(Member.id)).where(
            Member.guild_id == guild_id, Member.current_group_id == group_id
        )
    ) or 0


def count_members_above(
    session: Session,
    guild_id: str,
    threshold: int,
    *,
    group_id: str | None = None,
    weekly: bool = False,
) -> int:
    """Members in scope (and gang, if given) with strictly more points."""
    column = Member.weekly_points if weekly else Member.points
    stmt = select(func.count(Member.id)).where(
        Member.guild_id == guild_id, column > threshold
    )
    if group_id is not None:
        stmt = stmt.where(Member.current_group_id == group_id)
    return session.scalar(stmt) or 0

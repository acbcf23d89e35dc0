"""
gangledger.services.audit_service — Activity log export feed
=============================================================

Read-only access to ``activity_log`` for exporters (spreadsheet archive,
the admin API).  Entries come back oldest first.  Nothing here writes;
an exporter failing never affects a committed award or rollover.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime

from sqlalchemy import Engine, select

from gangledger.database.models import ActivityLog, TargetType
from gangledger.database.store import store_for
from gangledger.engine.activity import ensure_utc
from gangledger.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


def _activity_query(
    guild_id: str,
    *,
    since: datetime | None,
    until: datetime | None,
    target_id: str | None,
    target_type: TargetType | str | None,
):
    since = ensure_utc(since) if since is not None else None
    until = ensure_utc(until) if until is not None else None
    if since is not None and until is not None and since > until:
        raise ValidationError("'since' must not be after 'until'")
    if target_type is not None and target_type not in set(TargetType):
        raise ValidationError(f"Unknown target type {target_type!r}")

    stmt = select(ActivityLog).where(ActivityLog.guild_id == guild_id)
    if since is not None:
        stmt = stmt.where(ActivityLog.created_at >= since)
    if until is not None:
        stmt = stmt.where(ActivityLog.created_at < until)
    if target_id is not None:
        stmt = stmt.where(ActivityLog.target_id == target_id)
    if target_type is not None:
        stmt = stmt.where(ActivityLog.target_type == str(target_type))
    return stmt.order_by(ActivityLog.created_at, ActivityLog.id)


def iter_activity_log(
    engine: Engine,
    guild_id: str,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
    target_id: str | None = None,
    target_type: TargetType | str | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Iterator[dict]:
    """Stream entries in ``[since, until)`` as plain dicts, oldest first.

    Validation happens before the first row is fetched, so a bad range
    raises on the first ``next()``.
    """
    stmt = _activity_query(
        guild_id, since=since, until=until, target_id=target_id, target_type=target_type,
    )
    with store_for(engine).read() as session:
        for entry in session.scalars(stmt.execution_options(yield_per=batch_size)):
            yield entry_to_dict(entry)


def list_activity(
    engine: Engine,
    guild_id: str,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
    target_id: str | None = None,
    target_type: TargetType | str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[dict]:
    """One page of the log, for the admin API."""
    if limit < 1 or offset < 0:
        raise ValidationError("limit must be positive and offset non-negative")
    stmt = _activity_query(
        guild_id, since=since, until=until, target_id=target_id, target_type=target_type,
    )
    with store_for(engine).read() as session:
        rows = session.scalars(stmt.offset(offset).limit(limit)).all()
        return [entry_to_dict(row) for row in rows]


def entry_to_dict(entry: ActivityLog) -> dict:
    return {
        "id": entry.id,
        "guild_id": entry.guild_id,
        "target_type": entry.target_type,
        "target_id": entry.target_id,
        "target_name": entry.target_name,
        "action": entry.action,
        "points": entry.points,
        "source": entry.source,
        "awarded_by": entry.awarded_by,
        "awarded_by_name": entry.awarded_by_name,
        "reason": entry.reason,
        "created_at": ensure_utc(entry.created_at).isoformat() if entry.created_at else None,
    }

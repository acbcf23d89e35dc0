"""
gangledger.services.rollover_service — Weekly rollover
=======================================================

Zeroes the weekly counters of every member and gang in a guild.  Each
entity is zeroed in its own atomic write, sequentially, so an award that
races the rollover lands entirely before or entirely after that entity's
reset.  Running it twice yields the same state as running it once.

:func:`reset_all` is the full wipe (lifetime totals too).  It is an
administrative action and never scheduled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from gangledger.database.models import Group, Member
from gangledger.database.store import (
    find_group,
    find_member,
    group_key,
    list_group_ids,
    list_member_ids,
    member_key,
    store_for,
)
from gangledger.engine.activity import ensure_utc
from gangledger.services.aggregation_service import refresh_group_totals

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RolloverSummary:
    members_reset: int
    groups_reset: int
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "members_reset": self.members_reset,
            "groups_reset": self.groups_reset,
            "timestamp": self.timestamp.isoformat(),
        }


def _zeroed(breakdown: dict | None) -> dict[str, int]:
    """Same keys, every value 0."""
    return {key: 0 for key in breakdown or {}}


# ---------------------------------------------------------------------------
# Per-entity resets
# ---------------------------------------------------------------------------
def _reset_member(member: Member, now: datetime, *, lifetime: bool) -> None:
    for bucket in member.buckets:
        bucket.weekly_points = 0
        bucket.weekly_points_breakdown = _zeroed(bucket.weekly_points_breakdown)
        if lifetime:
            bucket.total_points = 0
            bucket.points_breakdown = _zeroed(bucket.points_breakdown)
    member.sync_mirror()
    member.weekly_message_count = 0
    if lifetime:
        member.message_count = 0
    member.last_weekly_reset = now


def _reset_group(group: Group, now: datetime, *, lifetime: bool) -> None:
    group.weekly_direct_points = 0
    group.weekly_points_breakdown = _zeroed(group.weekly_points_breakdown)
    group.cached_weekly_member_points = 0
    group.weekly_message_count = 0
    if lifetime:
        group.direct_points = 0
        group.points_breakdown = _zeroed(group.points_breakdown)
        group.cached_member_points = 0
        group.message_count = 0
    group.last_weekly_reset = now


def _handled_since(entity: Member | Group, boundary: datetime | None) -> bool:
    """True if *entity* was reset (or created) at or after *boundary*."""
    if boundary is None:
        return False
    stamp = entity.last_weekly_reset or entity.created_at
    return stamp is not None and ensure_utc(stamp) >= boundary


def _rollover(
    engine: Engine,
    guild_id: str,
    now: datetime,
    *,
    lifetime: bool,
    boundary: datetime | None = None,
) -> RolloverSummary:
    """Reset every member, then every gang.

    With a *boundary*, entities already reset (or created) since then are
    skipped, so re-running after a partial failure only finishes the
    entities the failed run never reached.
    """
    store = store_for(engine)
    with store.read() as session:
        member_ids = list_member_ids(session, guild_id)
        group_ids = list_group_ids(session, guild_id)

    members_reset = 0
    for member_id in member_ids:

        def _apply_member(session: Session, member_id=member_id) -> bool:
            member = find_member(session, guild_id, member_id, for_update=True)
            if member is None or _handled_since(member, boundary):
                return False
            _reset_member(member, now, lifetime=lifetime)
            return True

        if store.atomically(member_key(guild_id, member_id), _apply_member):
            members_reset += 1

    groups_reset = 0
    for group_id in group_ids:

        def _apply_group(session: Session, group_id=group_id) -> bool:
            group = find_group(session, guild_id, group_id, for_update=True)
            if group is None or _handled_since(group, boundary):
                return False
            _reset_group(group, now, lifetime=lifetime)
            return True

        if store.atomically(group_key(guild_id, group_id), _apply_group):
            groups_reset += 1
            # members may have scored since their own reset
            refresh_group_totals(engine, guild_id, group_id)

    return RolloverSummary(members_reset=members_reset, groups_reset=groups_reset, timestamp=now)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def reset_weekly(
    engine: Engine,
    guild_id: str,
    *,
    now: datetime | None = None,
    boundary: datetime | None = None,
) -> RolloverSummary:
    """Zero weekly points, breakdowns and message counts for the guild.

    Entities already reset or created at or after *boundary* are left alone.
    """
    now = now or datetime.now(UTC)
    summary = _rollover(engine, guild_id, now, lifetime=False, boundary=boundary)

    logger.info(
        "Weekly rollover for guild %s: %d members, %d gangs",
        guild_id, summary.members_reset, summary.groups_reset,
    )
    return summary


def reset_all(engine: Engine, guild_id: str, *, now: datetime | None = None) -> RolloverSummary:
    """Full wipe: weekly and lifetime points, breakdowns and counters.

    Memberships, buckets and the activity log survive.
    """
    now = now or datetime.now(UTC)
    summary = _rollover(engine, guild_id, now, lifetime=True)
    logger.warning(
        "Full points wipe for guild %s: %d members, %d gangs",
        guild_id, summary.members_reset, summary.groups_reset,
    )
    return summary


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------
def last_boundary(now: datetime, weekday: int, hour: int) -> datetime:
    """Most recent ``weekday`` at ``hour``:00 UTC at or before *now*."""
    now = ensure_utc(now)
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    candidate -= timedelta(days=(candidate.weekday() - weekday) % 7)
    if candidate > now:
        candidate -= timedelta(days=7)
    return candidate


def last_rollover_at(engine: Engine, guild_id: str) -> datetime | None:
    """Oldest gang reset time; a never-reset gang counts from its creation.

    Taking the oldest keeps a rollover that stopped half-way due until
    every gang has been reset.
    """
    with store_for(engine).read() as session:
        value = session.execute(
            select(func.min(func.coalesce(Group.last_weekly_reset, Group.created_at)))
            .where(Group.guild_id == guild_id)
        ).scalar()
    return ensure_utc(value) if value else None


def run_scheduled_rollover(
    engine: Engine,
    guild_id: str,
    *,
    weekday: int,
    hour: int,
    now: datetime | None = None,
) -> RolloverSummary | None:
    """Reset weekly counters if the latest boundary has not been handled.

    The last reset time is read back from the gangs, so a restart or a
    second bot process never runs the same week twice.  Returns ``None``
    when nothing was due.
    """
    now = now or datetime.now(UTC)
    boundary = last_boundary(now, weekday, hour)
    previous = last_rollover_at(engine, guild_id)
    if previous is not None and previous >= boundary:
        return None
    return reset_weekly(engine, guild_id, now=now, boundary=boundary)

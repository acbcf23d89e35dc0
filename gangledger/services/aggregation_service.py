"""
gangledger.services.aggregation_service — Gang caches & leaderboards
=====================================================================

Two halves:

**Aggregation** — :func:`refresh_group_totals` recomputes a gang's
``cached_member_points`` / ``cached_weekly_member_points`` /
``member_count`` from its current members.  It always runs in its own
transaction *after* the triggering write commits, so a leaderboard read
may lag one award behind.  That staleness is accepted; nothing ever waits
for aggregation.

**Leaderboards** — read-only queries over members and gangs.  Member
boards only count members with a positive score and break ties by
registration order.  Gang points never appear on member boards.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from gangledger.database.models import Group, Member
from gangledger.database.store import (
    count_group_members,
    count_members_above,
    find_group,
    find_member,
    group_key,
    list_group_ids,
    store_for,
    sum_group_member_points,
)
from gangledger.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# Result rows
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MemberStanding:
    rank: int
    member_id: str
    display_name: str
    points: int
    group_id: str | None
    group_name: str | None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class GroupStanding:
    rank: int
    group_id: str
    name: str
    total_score: int
    direct_points: int
    member_points: int
    member_count: int
    breakdown: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------
def refresh_group_totals(engine: Engine, guild_id: str, group_id: str | None) -> Group | None:
    """Recompute a gang's cached member totals and member count.

    Zero members is a normal state (caches become 0).  An unknown gang is
    skipped with a debug log: members may reference a gang that config no
    longer seeds.
    """
    if group_id is None:
        return None

    def _apply(session: Session) -> Group | None:
        group = find_group(session, guild_id, group_id, for_update=True)
        if group is None:
            return None
        points, weekly, count = sum_group_member_points(session, guild_id, group_id)
        group.cached_member_points = points
        group.cached_weekly_member_points = weekly
        group.member_count = count
        return group

    group = store_for(engine).atomically(group_key(guild_id, group_id), _apply)
    if group is None:
        logger.debug("Skipped aggregation for unknown gang %s", group_id)
    else:
        logger.debug(
            "Gang %s aggregates → members=%d points=%d weekly=%d",
            group_id, group.member_count, group.cached_member_points,
            group.cached_weekly_member_points,
        )
    return group


def refresh_member_count(engine: Engine, guild_id: str, group_id: str) -> int | None:
    """Recount a gang's current members without touching point caches."""

    def _apply(session: Session) -> int | None:
        group = find_group(session, guild_id, group_id, for_update=True)
        if group is None:
            return None
        group.member_count = count_group_members(session, guild_id, group_id)
        return group.member_count

    return store_for(engine).atomically(group_key(guild_id, group_id), _apply)


def refresh_all_groups(engine: Engine, guild_id: str) -> int:
    """Refresh every gang in *guild_id* sequentially; returns how many."""
    with store_for(engine).read() as session:
        group_ids = list_group_ids(session, guild_id)
    for group_id in group_ids:
        refresh_group_totals(engine, guild_id, group_id)
    return len(group_ids)


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
def _check_page(limit: int, offset: int) -> None:
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")


def top_members(
    engine: Engine,
    guild_id: str,
    *,
    group_id: str | None = None,
    weekly: bool = False,
    limit: int = 10,
    offset: int = 0,
) -> list[MemberStanding]:
    """Members with a positive score, highest first."""
    _check_page(limit, offset)
    column = Member.weekly_points if weekly else Member.points

    stmt = select(Member).where(Member.guild_id == guild_id, column > 0)
    if group_id is not None:
        stmt = stmt.where(Member.current_group_id == group_id)
    stmt = stmt.order_by(column.desc(), Member.id).offset(offset).limit(limit)

    with store_for(engine).read() as session:
        rows = session.scalars(stmt).all()
        return [
            MemberStanding(
                rank=offset + i + 1,
                member_id=m.member_id,
                display_name=m.display_name,
                points=m.weekly_points if weekly else m.points,
                group_id=m.current_group_id,
                group_name=m.current_group_name,
            )
            for i, m in enumerate(rows)
        ]


def count_ranked_members(
    engine: Engine, guild_id: str, *, group_id: str | None = None, weekly: bool = False
) -> int:
    """Number of members that appear on the board (for pagination)."""
    with store_for(engine).read() as session:
        return count_members_above(session, guild_id, 0, group_id=group_id, weekly=weekly)


def top_groups(engine: Engine, guild_id: str, *, weekly: bool = False) -> list[GroupStanding]:
    """Every gang, sorted by direct + cached member points."""
    score = Group.weekly_total_score if weekly else Group.total_score
    stmt = (
        select(Group)
        .where(Group.guild_id == guild_id)
        .order_by(score.desc(), Group.id)
    )
    with store_for(engine).read() as session:
        groups = session.scalars(stmt).all()
        return [_group_standing(g, i + 1, weekly) for i, g in enumerate(groups)]


def _group_standing(group: Group, rank: int, weekly: bool) -> GroupStanding:
    if weekly:
        return GroupStanding(
            rank=rank,
            group_id=group.group_id,
            name=group.name,
            total_score=group.weekly_total_score,
            direct_points=group.weekly_direct_points,
            member_points=group.cached_weekly_member_points,
            member_count=group.member_count,
            breakdown=dict(group.weekly_points_breakdown or {}),
        )
    return GroupStanding(
        rank=rank,
        group_id=group.group_id,
        name=group.name,
        total_score=group.total_score,
        direct_points=group.direct_points,
        member_points=group.cached_member_points,
        member_count=group.member_count,
        breakdown=dict(group.points_breakdown or {}),
    )


def member_rank(
    engine: Engine,
    guild_id: str,
    member_id: str,
    *,
    group_id: str | None = None,
    weekly: bool = False,
) -> int:
    """1 + the number of members with strictly more points."""
    with store_for(engine).read() as session:
        member = find_member(session, guild_id, member_id)
        if member is None:
            raise NotFoundError("member", member_id)
        value = member.weekly_points if weekly else member.points
        return count_members_above(session, guild_id, value, group_id=group_id, weekly=weekly) + 1


def _group_rank(session: Session, group: Group, *, weekly: bool) -> int:
    score = Group.weekly_total_score if weekly else Group.total_score
    value = group.weekly_total_score if weekly else group.total_score
    above = session.scalar(
        select(func.count(Group.id)).where(Group.guild_id == group.guild_id, score > value)
    ) or 0
    return above + 1


def group_summary(
    engine: Engine, guild_id: str, group_id: str, *, top: int = 5, weekly: bool = False
) -> dict:
    """Gang info card: standing, direct breakdown, and its best members."""
    with store_for(engine).read() as session:
        group = find_group(session, guild_id, group_id)
        if group is None:
            raise NotFoundError("group", group_id)
        standing = _group_standing(group, _group_rank(session, group, weekly=weekly), weekly)

    members = top_members(engine, guild_id, group_id=group_id, weekly=weekly, limit=top)
    return {
        **standing.to_dict(),
        "weekly": weekly,
        "message_count": group.weekly_message_count if weekly else group.message_count,
        "top_members": [m.to_dict() for m in members],
    }


def member_profile(engine: Engine, guild_id: str, member_id: str) -> dict:
    """Member card: current standing plus every gang bucket they hold."""
    with store_for(engine).read() as session:
        member = find_member(session, guild_id, member_id)
        if member is None:
            raise NotFoundError("member", member_id)
        rank = count_members_above(session, guild_id, member.points) + 1
        weekly_rank = count_members_above(session, guild_id, member.weekly_points, weekly=True) + 1
        buckets = [
            {
                "group_id": b.group_id,
                "group_name": b.group_name,
                "total_points": b.total_points,
                "weekly_points": b.weekly_points,
                "points_breakdown": dict(b.points_breakdown or {}),
                "weekly_points_breakdown": dict(b.weekly_points_breakdown or {}),
                "current": b.group_id == member.current_group_id,
            }
            for b in member.buckets
        ]
        return {
            "member_id": member.member_id,
            "display_name": member.display_name,
            "group_id": member.current_group_id,
            "group_name": member.current_group_name,
            "points": member.points,
            "weekly_points": member.weekly_points,
            "rank": rank,
            "weekly_rank": weekly_rank,
            "message_count": member.message_count,
            "weekly_message_count": member.weekly_message_count,
            "last_active_at": member.last_active_at.isoformat() if member.last_active_at else None,
            "buckets": buckets,
        }

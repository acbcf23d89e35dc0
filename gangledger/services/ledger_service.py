"""
gangledger.services.ledger_service — Point awards & deductions
===============================================================

Shared service module callable by both the bot and the API.

Every award follows the same pattern:
  1. Validate the delta (no side effects on failure)
  2. Lock and load the target row
  3. Apply :func:`gangledger.engine.ledger.apply_points` to its breakdowns
  4. Write one ``activity_log`` row
  5. Commit
  6. Refresh the gang's cached aggregates in a separate transaction

Member awards never create members; registration is the job of
:mod:`gangledger.services.membership_service` and the activity pipeline.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from gangledger.database.models import (
    ActivityLog,
    Group,
    Member,
    PointAction,
    TargetType,
)
from gangledger.database.store import (
    find_group,
    find_member,
    group_key,
    member_key,
    store_for,
)
from gangledger.engine.ledger import PointsUpdate, apply_points, validate_delta
from gangledger.errors import NotFoundError, ValidationError
from gangledger.services.aggregation_service import refresh_group_totals
from gangledger.services.membership_service import ensure_bucket

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gangledger.engine.events import AwardRequest
    from gangledger.engine.ledger import CategorySet

logger = logging.getLogger(__name__)


def _log_points(
    session: Session,
    *,
    guild_id: str,
    target_type: TargetType,
    target_id: str,
    target_name: str,
    points: int,
    source: str,
    awarded_by: str | None,
    awarded_by_name: str | None,
    reason: str | None,
    now: datetime,
) -> None:
    """Insert an activity_log row within the current transaction."""
    session.add(ActivityLog(
        guild_id=guild_id,
        target_type=target_type.value,
        target_id=target_id,
        target_name=target_name,
        action=PointAction.for_delta(points).value,
        points=points,
        source=source,
        awarded_by=awarded_by,
        awarded_by_name=awarded_by_name,
        reason=reason,
        created_at=now,
    ))


def apply_member_delta(
    session: Session,
    member: Member,
    delta: int,
    category: str | None,
    categories: CategorySet,
    *,
    awarded_by: str | None = None,
    awarded_by_name: str | None = None,
    reason: str | None = None,
    now: datetime,
) -> PointsUpdate:
    """Apply *delta* to the member's current-gang bucket and log it.

    Runs inside the caller's transaction; also used by the activity
    pipeline so message points follow the exact same rules.
    """
    if member.current_group_id is None:
        raise ValidationError(f"Member {member.member_id!r} is not in a gang")

    bucket = ensure_bucket(
        member,
        member.current_group_id,
        member.current_group_name or member.current_group_id,
        categories,
    )
    update = apply_points(
        bucket.points_breakdown,
        bucket.weekly_points_breakdown,
        category,
        delta,
        categories,
    )
    bucket.points_breakdown = update.breakdown
    bucket.weekly_points_breakdown = update.weekly_breakdown
    bucket.total_points = update.total
    bucket.weekly_points = update.weekly_total
    member.sync_mirror()

    _log_points(
        session,
        guild_id=member.guild_id,
        target_type=TargetType.MEMBER,
        target_id=member.member_id,
        target_name=member.display_name,
        points=delta,
        source=update.category,
        awarded_by=awarded_by,
        awarded_by_name=awarded_by_name,
        reason=reason,
        now=now,
    )
    return update


def award_member_points(
    engine: Engine,
    *,
    guild_id: str,
    member_id: str,
    points: int,
    category: str | None,
    categories: CategorySet,
    display_name: str | None = None,
    awarded_by: str | None = None,
    awarded_by_name: str | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> Member:
    """Award (or, with a negative delta, deduct) points to a member.

    Raises
    ------
    ValidationError
        If *points* is not a non-zero integer.
    NotFoundError
        If the member has never been registered.
    """
    delta = validate_delta(points)
    now = now or datetime.now(UTC)

    def _apply(session: Session) -> tuple[Member, PointsUpdate]:
        member = find_member(session, guild_id, member_id, for_update=True)
        if member is None:
            raise NotFoundError("member", member_id)
        if display_name:
            member.display_name = display_name
        update = apply_member_delta(
            session,
            member,
            delta,
            category,
            categories,
            awarded_by=awarded_by,
            awarded_by_name=awarded_by_name,
            reason=reason,
            now=now,
        )
        return member, update

    member, update = store_for(engine).atomically(member_key(guild_id, member_id), _apply)
    logger.info(
        "%s %+d %s points → %s (%s), now %d",
        PointAction.for_delta(delta).value.title(), delta, update.category,
        member.display_name, member.member_id, member.points,
    )

    refresh_group_totals(engine, guild_id, member.current_group_id)
    return member


def award_group_points(
    engine: Engine,
    *,
    guild_id: str,
    group_id: str,
    points: int,
    category: str | None,
    categories: CategorySet,
    awarded_by: str | None = None,
    awarded_by_name: str | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> Group:
    """Award points to a gang's own pool.  No member is touched."""
    delta = validate_delta(points)
    now = now or datetime.now(UTC)

    def _apply(session: Session) -> tuple[Group, PointsUpdate]:
        group = find_group(session, guild_id, group_id, for_update=True)
        if group is None:
            raise NotFoundError("group", group_id)
        update = apply_points(
            group.points_breakdown,
            group.weekly_points_breakdown,
            category,
            delta,
            categories,
        )
        group.points_breakdown = update.breakdown
        group.weekly_points_breakdown = update.weekly_breakdown
        group.direct_points = update.total
        group.weekly_direct_points = update.weekly_total

        _log_points(
            session,
            guild_id=guild_id,
            target_type=TargetType.GROUP,
            target_id=group.group_id,
            target_name=group.name,
            points=delta,
            source=update.category,
            awarded_by=awarded_by,
            awarded_by_name=awarded_by_name,
            reason=reason,
            now=now,
        )
        return group, update

    group, update = store_for(engine).atomically(group_key(guild_id, group_id), _apply)
    logger.info(
        "Gang %s %+d %s points, direct pool now %d",
        group.name, delta, update.category, group.direct_points,
    )
    return group


def apply_award(
    engine: Engine,
    request: AwardRequest,
    *,
    member_categories: CategorySet,
    group_categories: CategorySet,
) -> Member | Group:
    """Dispatch an :class:`AwardRequest` to the member or gang path."""
    if request.targets_group:
        return award_group_points(
            engine,
            guild_id=request.guild_id,
            group_id=request.target_group_id,
            points=request.points,
            category=request.category,
            categories=group_categories,
            awarded_by=request.awarded_by,
            awarded_by_name=request.awarded_by_name,
            reason=request.reason,
        )
    return award_member_points(
        engine,
        guild_id=request.guild_id,
        member_id=request.target_member_id,
        points=request.points,
        category=request.category,
        categories=member_categories,
        display_name=request.display_name,
        awarded_by=request.awarded_by,
        awarded_by_name=request.awarded_by_name,
        reason=request.reason,
    )


def reset_member_points(
    engine: Engine,
    *,
    guild_id: str,
    member_id: str,
) -> Member:
    """Zero every bucket of one member (lifetime and weekly).

    No activity log entry is written; this is an administrative wipe.
    """

    def _apply(session: Session) -> Member:
        member = find_member(session, guild_id, member_id, for_update=True)
        if member is None:
            raise NotFoundError("member", member_id)
        for bucket in member.buckets:
            bucket.points_breakdown = {key: 0 for key in bucket.points_breakdown or {}}
            bucket.weekly_points_breakdown = {
                key: 0 for key in bucket.weekly_points_breakdown or {}
            }
            bucket.total_points = 0
            bucket.weekly_points = 0
        member.sync_mirror()
        return member

    member = store_for(engine).atomically(member_key(guild_id, member_id), _apply)
    logger.info("Reset all points for %s (%s)", member.display_name, member_id)
    refresh_group_totals(engine, guild_id, member.current_group_id)
    return member

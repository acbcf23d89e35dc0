"""
gangledger.services.membership_service — Gang membership transitions
=====================================================================

A member keeps one point bucket per gang they have ever belonged to.
Switching gangs only changes which bucket backs ``member.points`` /
``member.weekly_points``; leaving and re-joining a gang restores exactly
what that bucket held.

Switching never writes an activity log entry (it is not a point event)
and never touches gang caches inside the member's transaction.  Callers
refresh both the old and the new gang afterwards.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from gangledger.database.models import Member, MemberGroupPoints
from gangledger.database.store import find_member, member_key, store_for
from gangledger.engine.events import GroupSwitch, RosterEntry
from gangledger.services.aggregation_service import refresh_group_totals, refresh_member_count

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy import Engine

    from gangledger.config import LedgerConfig
    from gangledger.engine.ledger import CategorySet

logger = logging.getLogger(__name__)


def ensure_bucket(
    member: Member,
    group_id: str,
    group_name: str,
    categories: CategorySet | None = None,
) -> MemberGroupPoints:
    """Return the member's bucket for *group_id*, creating a zero one."""
    bucket = member.bucket_for(group_id)
    if bucket is None:
        empty = categories.empty() if categories else {}
        bucket = MemberGroupPoints(
            group_id=group_id,
            group_name=group_name,
            total_points=0,
            weekly_points=0,
            points_breakdown=dict(empty),
            weekly_points_breakdown=dict(empty),
        )
        member.buckets.append(bucket)
    return bucket


def switch_group(
    member: Member,
    new_group_id: str,
    new_group_name: str,
    categories: CategorySet | None = None,
) -> bool:
    """Move *member* to *new_group_id* in memory; the caller persists.

    Returns ``False`` (and changes nothing) if the member is already there.
    """
    if member.current_group_id == new_group_id:
        return False

    member.current_group_id = new_group_id
    member.current_group_name = new_group_name
    bucket = ensure_bucket(member, new_group_id, new_group_name, categories)
    bucket.group_name = new_group_name
    member.sync_mirror()
    return True


def new_member(
    *,
    guild_id: str,
    member_id: str,
    display_name: str,
    group_id: str,
    group_name: str,
    categories: CategorySet | None = None,
) -> Member:
    """Build (not persist) a member with a zero bucket for *group_id*."""
    member = Member(
        guild_id=guild_id,
        member_id=member_id,
        display_name=display_name,
        current_group_id=group_id,
        current_group_name=group_name,
        points=0,
        weekly_points=0,
        message_count=0,
        weekly_message_count=0,
        recent_messages=[],
    )
    ensure_bucket(member, group_id, group_name, categories)
    return member


def upsert_member_in_session(
    session: Session,
    *,
    guild_id: str,
    member_id: str,
    display_name: str,
    group_id: str,
    group_name: str,
    categories: CategorySet | None = None,
) -> tuple[Member, str | None, bool]:
    """Create or move a member inside an open transaction.

    Returns ``(member, previous_group_id, created)``; the previous gang is
    ``None`` when nothing moved.
    """
    member = find_member(session, guild_id, member_id, for_update=True)
    if member is None:
        member = new_member(
            guild_id=guild_id,
            member_id=member_id,
            display_name=display_name,
            group_id=group_id,
            group_name=group_name,
            categories=categories,
        )
        session.add(member)
        session.flush()
        logger.info("Registered %s (%s) in gang %s", display_name, member_id, group_id)
        return member, None, True

    previous = member.current_group_id
    member.display_name = display_name
    if switch_group(member, group_id, group_name, categories):
        logger.info(
            "Moved %s (%s) from gang %s to %s",
            display_name, member_id, previous, group_id,
        )
        return member, previous, False
    return member, None, False


def register_or_update_member(
    engine: Engine,
    *,
    guild_id: str,
    member_id: str,
    display_name: str,
    group_id: str,
    group_name: str,
    categories: CategorySet | None = None,
) -> Member:
    """Idempotent upsert of a member into *group_id*.

    Creates the member with a zero bucket if absent; otherwise switches
    gangs only when the gang differs.  The display name is always
    refreshed.  Member counts and caches of the affected gangs are
    refreshed afterwards, outside the member's transaction.
    """
    def _apply(session: Session) -> tuple[Member, str | None, bool]:
        return upsert_member_in_session(
            session,
            guild_id=guild_id,
            member_id=member_id,
            display_name=display_name,
            group_id=group_id,
            group_name=group_name,
            categories=categories,
        )

    member, previous, created = store_for(engine).atomically(
        member_key(guild_id, member_id), _apply
    )

    if previous is not None:
        refresh_group_totals(engine, guild_id, previous)
        refresh_group_totals(engine, guild_id, group_id)
    elif created:
        # a new member holds no points yet
        refresh_member_count(engine, guild_id, group_id)
    return member


def apply_group_switch(
    engine: Engine, switch: GroupSwitch, categories: CategorySet | None = None
) -> Member:
    """Envelope form of :func:`register_or_update_member`."""
    return register_or_update_member(
        engine,
        guild_id=switch.guild_id,
        member_id=switch.member_id,
        display_name=switch.display_name,
        group_id=switch.group_id,
        group_name=switch.group_name,
        categories=categories,
    )


def sync_member_roles(
    engine: Engine,
    cfg: LedgerConfig,
    *,
    guild_id: str,
    member_id: str,
    display_name: str,
    before_roles: Iterable[str | int],
    after_roles: Iterable[str | int],
) -> Member | None:
    """React to a role change: join the gang whose role was just added.

    Returns ``None`` when no gang role was added.
    """
    group = cfg.group_for_new_role(before_roles, after_roles)
    if group is None:
        return None
    return apply_group_switch(
        engine,
        GroupSwitch(
            guild_id=guild_id,
            member_id=member_id,
            display_name=display_name,
            group_id=group.group_id,
            group_name=group.name,
        ),
        cfg.member_categories,
    )


def sync_group_roster(
    engine: Engine,
    cfg: LedgerConfig,
    guild_id: str,
    members: Iterable[RosterEntry],
) -> dict[str, int]:
    """Bring stored gangs in line with a full roster snapshot.

    A member who still holds their current gang's role is left alone.
    Anyone else holding a gang role is registered into (or moved to) the
    first configured gang whose role they hold.  Members with no gang role
    are skipped, never removed.  Gang caches are refreshed once per
    affected gang at the end.

    Returns counts keyed ``registered``, ``moved``, ``unchanged`` and
    ``skipped``.
    """
    counts = {"registered": 0, "moved": 0, "unchanged": 0, "skipped": 0}
    touched: set[str] = set()
    store = store_for(engine)

    for entry in members:
        held = {str(r) for r in entry.role_ids}
        group = cfg.group_for_roles(held)
        if group is None:
            counts["skipped"] += 1
            continue

        def _apply(session: Session, entry=entry, held=held, group=group) -> tuple[str, str | None]:
            member = find_member(session, guild_id, entry.member_id, for_update=True)
            if member is not None and member.current_group_id:
                current = cfg.get_group(member.current_group_id)
                if current is not None and current.role_id in held:
                    return "unchanged", None
            _, previous, created = upsert_member_in_session(
                session,
                guild_id=guild_id,
                member_id=entry.member_id,
                display_name=entry.display_name,
                group_id=group.group_id,
                group_name=group.name,
                categories=cfg.member_categories,
            )
            if created:
                return "registered", None
            if previous is not None:
                return "moved", previous
            return "unchanged", None

        outcome, previous = store.atomically(member_key(guild_id, entry.member_id), _apply)
        counts[outcome] += 1
        if outcome != "unchanged":
            touched.add(group.group_id)
        if previous is not None:
            touched.add(previous)

    for group_id in sorted(touched):
        refresh_group_totals(engine, guild_id, group_id)

    logger.info(
        "Roster sync for guild %s: %d registered, %d moved, %d unchanged, %d skipped",
        guild_id, counts["registered"], counts["moved"], counts["unchanged"], counts["skipped"],
    )
    return counts

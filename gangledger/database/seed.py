"""
gangledger.database.seed — Gang table seeder
=============================================

Gangs are declared in ``config.yaml``.  On every startup the bot makes the
``groups`` table match that list:

- missing gangs are inserted with zeroed pools
- existing gangs get their name, role and channel refreshed
- gangs no longer in config are removed by :func:`cleanup_orphan_groups`,
  after their members have been moved to the default gang

Idempotent; point pools are never touched by seeding.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import Engine, delete
from sqlalchemy.orm import Session

from gangledger.database.models import Group
from gangledger.database.store import (
    find_group,
    find_member,
    group_key,
    list_group_ids,
    list_member_ids_in_group,
    member_key,
    store_for,
)
from gangledger.services.aggregation_service import refresh_group_totals
from gangledger.services.membership_service import switch_group

if TYPE_CHECKING:
    from gangledger.config import LedgerConfig

logger = logging.getLogger(__name__)


def ensure_group(
    session: Session,
    *,
    guild_id: str,
    group_id: str,
    name: str,
    channel_id: str | None = None,
    role_id: str | None = None,
) -> Group:
    """Return the gang row, inserting an empty one if it does not exist."""
    group = find_group(session, guild_id, group_id)
    if group is not None:
        return group

    group = Group(
        guild_id=guild_id,
        group_id=group_id,
        name=name,
        role_id=role_id,
        channel_id=channel_id,
        direct_points=0,
        weekly_direct_points=0,
        points_breakdown={},
        weekly_points_breakdown={},
        cached_member_points=0,
        cached_weekly_member_points=0,
        member_count=0,
        message_count=0,
        weekly_message_count=0,
    )
    session.add(group)
    session.flush()
    logger.info("Created gang %s (%s)", name, group_id)
    return group


def seed_groups(engine: Engine, cfg: LedgerConfig) -> int:
    """Insert or refresh every configured gang; returns how many were new."""
    created = 0
    for gcfg in cfg.groups:

        def _apply(session: Session, gcfg=gcfg) -> bool:
            group = find_group(session, cfg.guild_id, gcfg.group_id, for_update=True)
            if group is None:
                ensure_group(
                    session,
                    guild_id=cfg.guild_id,
                    group_id=gcfg.group_id,
                    name=gcfg.name,
                    channel_id=gcfg.channel_id,
                    role_id=gcfg.role_id,
                )
                return True
            if (group.name, group.role_id, group.channel_id) != (
                gcfg.name, gcfg.role_id, gcfg.channel_id,
            ):
                group.name = gcfg.name
                group.role_id = gcfg.role_id
                group.channel_id = gcfg.channel_id
            return False

        if store_for(engine).atomically(group_key(cfg.guild_id, gcfg.group_id), _apply):
            created += 1

    if created:
        logger.info("Seeded %d gang(s) from config.", created)
    return created


def cleanup_orphan_groups(engine: Engine, cfg: LedgerConfig) -> dict[str, int]:
    """Remove gangs that are no longer configured.

    Their current members move to ``cfg.default_group_id`` one at a time,
    each in its own member transaction.  Points held in the orphan gang's
    bucket stay in the member's history but stop counting towards any
    board.
    """
    default = cfg.get_group(cfg.default_group_id)
    configured = set(cfg.group_ids)

    with store_for(engine).read() as session:
        orphans = [g for g in list_group_ids(session, cfg.guild_id) if g not in configured]

    removed = moved = 0
    for group_id in orphans:
        with store_for(engine).read() as session:
            member_ids = list_member_ids_in_group(session, cfg.guild_id, group_id)

        for member_id in member_ids:

            def _move(session: Session, member_id=member_id, group_id=group_id) -> bool:
                member = find_member(session, cfg.guild_id, member_id, for_update=True)
                if member is None or member.current_group_id != group_id:
                    return False
                return switch_group(
                    member, default.group_id, default.name, cfg.member_categories
                )

            if store_for(engine).atomically(member_key(cfg.guild_id, member_id), _move):
                moved += 1

        def _drop(session: Session, group_id=group_id) -> None:
            session.execute(
                delete(Group).where(Group.guild_id == cfg.guild_id, Group.group_id == group_id)
            )

        store_for(engine).atomically(group_key(cfg.guild_id, group_id), _drop)
        removed += 1
        logger.info("Removed orphan gang %s (%d member(s) moved)", group_id, len(member_ids))

    if removed:
        refresh_group_totals(engine, cfg.guild_id, default.group_id)
    return {"groups_removed": removed, "members_moved": moved}

"""
gangledger.services.activity_service — Message → activity point pipeline
=========================================================================

Called once per chat message already resolved to a gang channel.

Pipeline (one per-member atomic unit):
1. Ignore messages whose channel did not resolve to a gang (normal flow)
2. Lock the member, creating them in the gang or moving them to it
3. Evaluate the message against the rate-limit rules
4. Persist the pruned recent-message window
5. For a qualifying message: bump member and gang message counters and
   award +1 activity point through the ledger
6. Commit, then refresh gang aggregates

Counters and the award land together or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.orm import Session

from gangledger.constants import ACTIVITY_CATEGORY, ACTIVITY_REASON
from gangledger.database.models import Group, Member
from gangledger.database.seed import ensure_group
from gangledger.database.store import member_key, store_for
from gangledger.engine.activity import (
    ActivityRules,
    MessageVerdict,
    ensure_utc,
    evaluate_message,
)
from gangledger.services.aggregation_service import refresh_group_totals, refresh_member_count
from gangledger.services.ledger_service import apply_member_delta
from gangledger.services.membership_service import upsert_member_in_session

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gangledger.engine.events import MessageObserved
    from gangledger.engine.ledger import CategorySet

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActivityResult:
    """What happened to one message.  ``verdict`` is ``None`` if ignored."""

    verdict: MessageVerdict | None
    member: Member | None = None

    @property
    def ignored(self) -> bool:
        return self.verdict is None

    @property
    def awarded(self) -> bool:
        return self.verdict is MessageVerdict.QUALIFIED


IGNORED = ActivityResult(verdict=None)


def _bump_group_activity(session: Session, guild_id: str, group_id: str, now: datetime) -> None:
    """Increment gang message counters with a single UPDATE.

    Done in SQL so concurrent members of the same gang never overwrite each
    other's increments.
    """
    session.execute(
        update(Group)
        .where(Group.guild_id == guild_id, Group.group_id == group_id)
        .values(
            message_count=Group.message_count + 1,
            weekly_message_count=Group.weekly_message_count + 1,
            last_active_at=now,
        )
        .execution_options(synchronize_session=False)
    )


def track_message(
    engine: Engine,
    event: MessageObserved,
    *,
    categories: CategorySet,
    rules: ActivityRules | None = None,
    activity_category: str = ACTIVITY_CATEGORY,
) -> ActivityResult:
    """Score one message.  Returns an :class:`ActivityResult`."""
    if event.group_id is None:
        return IGNORED

    rules = rules or ActivityRules()
    now = ensure_utc(event.timestamp)
    group_id = event.group_id
    group_name = event.group_name or group_id

    def _apply(session: Session) -> tuple[ActivityResult, str | None, bool]:
        ensure_group(
            session,
            guild_id=event.guild_id,
            group_id=group_id,
            name=group_name,
            channel_id=event.channel_id,
        )
        member, previous, created = upsert_member_in_session(
            session,
            guild_id=event.guild_id,
            member_id=event.member_id,
            display_name=event.display_name,
            group_id=group_id,
            group_name=group_name,
            categories=categories,
        )

        evaluation = evaluate_message(
            event.content,
            member.recent_messages,
            member.last_active_at,
            now,
            rules,
        )
        if evaluation.verdict in (MessageVerdict.TOO_SHORT, MessageVerdict.FILLER):
            return ActivityResult(evaluation.verdict, member), previous, created

        member.recent_messages = evaluation.window
        if not evaluation.qualified:
            return ActivityResult(evaluation.verdict, member), previous, created

        member.last_active_at = now
        member.message_count = (member.message_count or 0) + 1
        member.weekly_message_count = (member.weekly_message_count or 0) + 1
        _bump_group_activity(session, event.guild_id, group_id, now)

        apply_member_delta(
            session,
            member,
            1,
            activity_category,
            categories,
            reason=ACTIVITY_REASON,
            now=now,
        )
        return ActivityResult(evaluation.verdict, member), previous, created

    result, previous, created = store_for(engine).atomically(
        member_key(event.guild_id, event.member_id), _apply
    )

    logger.debug(
        "Message from %s in gang %s → %s",
        event.display_name, group_id, result.verdict,
    )
    if result.awarded:
        logger.info(
            "Activity point → %s (%s), now %d",
            event.display_name, event.member_id, result.member.points,
        )

    if previous is not None:
        refresh_group_totals(engine, event.guild_id, previous)
    if result.awarded or previous is not None:
        refresh_group_totals(engine, event.guild_id, group_id)
    elif created:
        refresh_member_count(engine, event.guild_id, group_id)
    return result

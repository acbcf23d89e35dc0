"""
tests/test_activity_service.py — Message → activity point pipeline
===================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import GUILD_ID
from gangledger.database.models import ActivityLog, Member
from gangledger.database.store import find_group, find_member, store_for
from gangledger.engine.activity import MessageVerdict
from gangledger.engine.events import MessageObserved
from gangledger.services.activity_service import track_message

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def send(seeded_engine, cfg):
    """Factory: deliver one message from ``member_id`` in a gang channel."""

    def _send(
        content: str,
        *,
        at: datetime = T0,
        member_id: str = "u1",
        group_id: str | None = "sea-kings",
    ):
        group = cfg.get_group(group_id) if group_id else None
        event = MessageObserved(
            guild_id=GUILD_ID,
            channel_id=group.channel_id if group else "555",
            member_id=member_id,
            display_name=f"user-{member_id}",
            content=content,
            group_id=group.group_id if group else None,
            group_name=group.name if group else None,
            timestamp=at,
        )
        return track_message(
            seeded_engine, event, categories=cfg.member_categories, rules=cfg.activity,
        )

    return _send


def _member(engine, member_id: str = "u1") -> Member | None:
    with store_for(engine).read() as session:
        return find_member(session, GUILD_ID, member_id)


class TestIgnoredMessages:
    def test_unresolved_channel_is_silently_ignored(self, seeded_engine, send):
        result = send("a perfectly fine message", group_id=None)
        assert result.ignored
        assert result.member is None
        assert _member(seeded_engine) is None


class TestScoring:
    def test_four_characters_earns_nothing(self, seeded_engine, send):
        result = send("abcd")
        assert result.verdict is MessageVerdict.TOO_SHORT
        member = _member(seeded_engine)
        assert member.points == 0
        assert member.recent_messages == []

    def test_five_characters_earns_one_point(self, seeded_engine, send):
        result = send("abcde")
        assert result.awarded
        member = _member(seeded_engine)
        assert member.points == 1
        assert member.current_bucket.points_breakdown["activity"] == 1
        assert member.message_count == 1
        assert member.weekly_message_count == 1

    def test_award_is_logged_with_activity_reason(self, seeded_engine, send):
        send("hello there friends")
        with store_for(seeded_engine).read() as session:
            (entry,) = session.scalars(select(ActivityLog)).all()
        assert entry.source == "activity"
        assert entry.reason == "activity"
        assert entry.awarded_by is None
        assert entry.points == 1

    def test_gang_counters_and_cache_follow(self, seeded_engine, send):
        send("first real message")
        send("another member talking", member_id="u2")
        with store_for(seeded_engine).read() as session:
            group = find_group(session, GUILD_ID, "sea-kings")
        assert group.message_count == 2
        assert group.weekly_message_count == 2
        assert group.cached_member_points == 2
        assert group.member_count == 2
        assert group.last_active_at is not None

    def test_filler_creates_member_without_points(self, seeded_engine, send):
        result = send("Good Morning")
        assert result.verdict is MessageVerdict.FILLER
        assert _member(seeded_engine).points == 0
        with store_for(seeded_engine).read() as session:
            assert find_group(session, GUILD_ID, "sea-kings").member_count == 1


class TestCooldownAndDuplicates:
    def test_two_messages_inside_window_award_one_point(self, seeded_engine, send):
        send("message number one", at=T0)
        result = send("message number two", at=T0 + timedelta(seconds=60))
        assert result.verdict is MessageVerdict.COOLDOWN
        assert _member(seeded_engine).points == 1

    def test_two_messages_beyond_window_award_two_points(self, seeded_engine, send):
        send("message number one", at=T0)
        result = send("message number two", at=T0 + timedelta(seconds=301))
        assert result.awarded
        assert _member(seeded_engine).points == 2

    def test_identical_messages_award_at_most_one_point(self, seeded_engine, send):
        send("copy paste spam", at=T0)
        result = send("copy paste spam", at=T0 + timedelta(seconds=10))
        assert result.verdict is MessageVerdict.DUPLICATE
        assert _member(seeded_engine).points == 1

    def test_rejected_messages_still_enter_the_window(self, seeded_engine, send):
        send("copy paste spam", at=T0)
        send("copy paste spam", at=T0 + timedelta(seconds=10))
        send("something else", at=T0 + timedelta(seconds=20))
        window = _member(seeded_engine).recent_messages
        assert [e["content"] for e in window] == [
            "copy paste spam", "copy paste spam", "something else",
        ]

    def test_window_is_pruned(self, seeded_engine, send):
        send("old message here", at=T0)
        send("new message here", at=T0 + timedelta(minutes=10))
        window = _member(seeded_engine).recent_messages
        assert [e["content"] for e in window] == ["new message here"]

    def test_burst_awards_once(self, seeded_engine, send):
        for i in range(10):
            send(f"burst message {i}", at=T0 + timedelta(seconds=i))
        assert _member(seeded_engine).points == 1


class TestGangResolution:
    def test_message_in_other_gang_channel_moves_member(self, seeded_engine, send):
        send("hello from the sea", at=T0)
        send("hello from thunder", at=T0 + timedelta(minutes=6), group_id="thunder")

        member = _member(seeded_engine)
        assert member.current_group_id == "thunder"
        assert member.points == 1
        assert member.bucket_for("sea-kings").total_points == 1
        with store_for(seeded_engine).read() as session:
            assert find_group(session, GUILD_ID, "sea-kings").member_count == 0
            assert find_group(session, GUILD_ID, "thunder").cached_member_points == 1

    def test_unseeded_gang_is_created_on_first_reference(self, db_engine, cfg):
        event = MessageObserved(
            guild_id=GUILD_ID, channel_id="901", member_id="u1", display_name="U",
            content="first message ever", group_id="sea-kings", group_name="Sea Kings",
            timestamp=T0,
        )
        result = track_message(db_engine, event, categories=cfg.member_categories)
        assert result.awarded
        with store_for(db_engine).read() as session:
            group = find_group(session, GUILD_ID, "sea-kings")
        assert group.channel_id == "901"
        assert group.cached_member_points == 1

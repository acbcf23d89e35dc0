"""
tests/test_audit_service.py — Activity log export feed
=======================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from conftest import GUILD_ID
from gangledger.database.models import TargetType
from gangledger.errors import ValidationError
from gangledger.services.audit_service import iter_activity_log, list_activity
from gangledger.services.ledger_service import award_group_points

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def history(seeded_engine, cfg, register, award):
    """Four entries one hour apart: u1 +5, u2 +3, u1 -2, thunder +10."""
    register("u1")
    register("u2")
    award("u1", 5, now=T0)
    award("u2", 3, now=T0 + timedelta(hours=1))
    award("u1", -2, now=T0 + timedelta(hours=2), reason="oops")
    award_group_points(
        seeded_engine, guild_id=GUILD_ID, group_id="thunder", points=10,
        category="events", categories=cfg.group_categories, now=T0 + timedelta(hours=3),
    )
    return seeded_engine


class TestIterActivityLog:
    def test_oldest_first(self, history):
        entries = list(iter_activity_log(history, GUILD_ID))
        assert [e["points"] for e in entries] == [5, 3, -2, 10]
        assert [e["action"] for e in entries] == ["award", "award", "deduct", "award"]

    def test_half_open_range(self, history):
        entries = list(iter_activity_log(
            history, GUILD_ID,
            since=T0 + timedelta(hours=1), until=T0 + timedelta(hours=3),
        ))
        assert [e["points"] for e in entries] == [3, -2]

    def test_filter_by_target(self, history):
        entries = list(iter_activity_log(history, GUILD_ID, target_id="u1"))
        assert [e["points"] for e in entries] == [5, -2]
        assert entries[1]["reason"] == "oops"

    def test_filter_by_target_type(self, history):
        (entry,) = iter_activity_log(history, GUILD_ID, target_type=TargetType.GROUP)
        assert entry["target_id"] == "thunder"
        assert entry["source"] == "events"

    def test_small_batches_yield_everything(self, history):
        assert len(list(iter_activity_log(history, GUILD_ID, batch_size=1))) == 4

    def test_inverted_range_rejected(self, history):
        feed = iter_activity_log(history, GUILD_ID, since=T0, until=T0 - timedelta(seconds=1))
        with pytest.raises(ValidationError):
            next(feed)

    def test_naive_and_aware_bounds_mix(self, history):
        naive_since = (T0 + timedelta(hours=1)).replace(tzinfo=None)
        entries = list(iter_activity_log(
            history, GUILD_ID, since=naive_since, until=T0 + timedelta(hours=3),
        ))
        assert [e["points"] for e in entries] == [3, -2]

    def test_inverted_mixed_bounds_rejected(self, history):
        feed = iter_activity_log(
            history, GUILD_ID, since=T0.replace(tzinfo=None), until=T0 - timedelta(hours=1),
        )
        with pytest.raises(ValidationError):
            next(feed)

    def test_unknown_target_type_rejected(self, history):
        with pytest.raises(ValidationError):
            list(iter_activity_log(history, GUILD_ID, target_type="team"))

    def test_other_guild_is_empty(self, history):
        assert list(iter_activity_log(history, "other-guild")) == []


class TestListActivity:
    def test_paging(self, history):
        page = list_activity(history, GUILD_ID, limit=2, offset=1)
        assert [e["points"] for e in page] == [3, -2]

    def test_entries_are_plain_dicts(self, history):
        entry = list_activity(history, GUILD_ID, limit=1)[0]
        assert entry["target_type"] == "member"
        assert entry["created_at"].startswith("2026-03-01T12:00:00")

    def test_bad_page(self, history):
        with pytest.raises(ValidationError):
            list_activity(history, GUILD_ID, limit=0)

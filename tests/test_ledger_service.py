"""
tests/test_ledger_service.py — Point award & deduction integration tests
=========================================================================

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from conftest import GUILD_ID
from gangledger.database.models import ActivityLog, Group, Member
from gangledger.database.store import find_group, find_member, store_for
from gangledger.engine.events import AwardRequest
from gangledger.engine.ledger import breakdown_total
from gangledger.errors import NotFoundError, ValidationError
from gangledger.services.ledger_service import (
    apply_award,
    award_group_points,
    reset_member_points,
)


def _log_rows(engine) -> list[ActivityLog]:
    with store_for(engine).read() as session:
        return list(session.scalars(select(ActivityLog).order_by(ActivityLog.id)))


def _member(engine, member_id: str) -> Member:
    with store_for(engine).read() as session:
        return find_member(session, GUILD_ID, member_id)


def _group(engine, group_id: str) -> Group:
    with store_for(engine).read() as session:
        return find_group(session, GUILD_ID, group_id)


class TestAwardMemberPoints:
    def test_award_updates_bucket_mirror_and_log(self, seeded_engine, register, award):
        register("u1")
        member = award("u1", 10, "games", awarded_by="7", awarded_by_name="Mod", reason="won")

        assert member.points == 10
        assert member.weekly_points == 10
        bucket = member.current_bucket
        assert bucket.points_breakdown["games"] == 10
        assert bucket.total_points == breakdown_total(bucket.points_breakdown)

        (entry,) = _log_rows(seeded_engine)
        assert entry.target_type == "member"
        assert entry.target_id == "u1"
        assert entry.action == "award"
        assert entry.points == 10
        assert entry.source == "games"
        assert entry.awarded_by_name == "Mod"
        assert entry.reason == "won"

    def test_award_refreshes_gang_cache(self, seeded_engine, register, award):
        register("u1")
        register("u2")
        award("u1", 4)
        award("u2", 6)
        group = _group(seeded_engine, "sea-kings")
        assert group.cached_member_points == 10
        assert group.cached_weekly_member_points == 10
        assert group.member_count == 2

    def test_plus_ten_minus_fifteen_clamps_to_zero(self, seeded_engine, register, award):
        register("u1")
        award("u1", 10, "games")
        member = award("u1", -15, "games")

        assert member.points == 0
        assert member.current_bucket.points_breakdown["games"] == 0
        assert member.current_bucket.total_points == 0
        actions = [(e.action, e.points) for e in _log_rows(seeded_engine)]
        assert actions == [("award", 10), ("deduct", -15)]

    def test_unknown_category_goes_to_other(self, register, award):
        register("u1")
        member = award("u1", 3, "not-a-category")
        assert member.current_bucket.points_breakdown["other"] == 3

    def test_unknown_member_is_not_found_and_writes_nothing(self, seeded_engine, award):
        with pytest.raises(NotFoundError):
            award("ghost", 5)
        assert _log_rows(seeded_engine) == []
        assert _member(seeded_engine, "ghost") is None

    @pytest.mark.parametrize("points", [0, True, 2.5])
    def test_invalid_delta_has_no_side_effects(self, seeded_engine, register, award, points):
        register("u1")
        with pytest.raises(ValidationError):
            award("u1", points)
        assert _log_rows(seeded_engine) == []
        assert _member(seeded_engine, "u1").points == 0

    def test_display_name_refreshed(self, seeded_engine, register, award):
        register("u1", name="Old")
        award("u1", 1, display_name="New")
        assert _member(seeded_engine, "u1").display_name == "New"

    def test_sum_and_floor_hold_after_many_awards(self, seeded_engine, register, award):
        register("u1")
        for points, category in [(5, "games"), (-2, "twitter"), (9, "twitter"), (-20, "games"),
                                 (3, "artAndMemes"), (-1, "other"), (4, "games")]:
            award("u1", points, category)

        member = _member(seeded_engine, "u1")
        for bucket in member.buckets:
            assert bucket.total_points == breakdown_total(bucket.points_breakdown)
            assert bucket.weekly_points == breakdown_total(bucket.weekly_points_breakdown)
            assert min(bucket.points_breakdown.values()) >= 0
            assert min(bucket.weekly_points_breakdown.values()) >= 0
        assert member.points == member.current_bucket.total_points
        assert member.points == 4 + 9 + 3


class TestAwardGroupPoints:
    def test_group_award_touches_only_direct_pool(self, seeded_engine, cfg, register, award):
        register("u1")
        award("u1", 2)
        group = award_group_points(
            seeded_engine,
            guild_id=GUILD_ID,
            group_id="sea-kings",
            points=50,
            category="events",
            categories=cfg.group_categories,
        )
        assert group.direct_points == 50
        assert group.weekly_direct_points == 50
        assert group.points_breakdown["events"] == 50
        assert _member(seeded_engine, "u1").points == 2

        entry = _log_rows(seeded_engine)[-1]
        assert entry.target_type == "group"
        assert entry.target_name == "Sea Kings"

    def test_group_deduction_clamps(self, seeded_engine, cfg):
        kwargs = dict(guild_id=GUILD_ID, group_id="thunder", categories=cfg.group_categories)
        award_group_points(seeded_engine, points=5, category="events", **kwargs)
        group = award_group_points(seeded_engine, points=-9, category="events", **kwargs)
        assert group.direct_points == 0

    def test_unknown_group(self, seeded_engine, cfg):
        with pytest.raises(NotFoundError):
            award_group_points(
                seeded_engine, guild_id=GUILD_ID, group_id="nope", points=1,
                category="events", categories=cfg.group_categories,
            )


class TestApplyAward:
    def test_dispatches_on_target(self, seeded_engine, cfg, register):
        register("u1")
        kwargs = dict(member_categories=cfg.member_categories,
                      group_categories=cfg.group_categories)

        member = apply_award(
            seeded_engine,
            AwardRequest(guild_id=GUILD_ID, points=3, category="games", target_member_id="u1"),
            **kwargs,
        )
        group = apply_award(
            seeded_engine,
            AwardRequest(guild_id=GUILD_ID, points=8, category="events",
                         target_group_id="thunder"),
            **kwargs,
        )
        assert isinstance(member, Member) and member.points == 3
        assert isinstance(group, Group) and group.direct_points == 8


class TestResetMemberPoints:
    def test_zeroes_every_bucket_without_logging(self, seeded_engine, register, award):
        register("u1")
        award("u1", 6)
        register("u1", "thunder")
        award("u1", 2)

        member = reset_member_points(seeded_engine, guild_id=GUILD_ID, member_id="u1")
        assert member.points == 0
        assert all(b.total_points == 0 and b.weekly_points == 0 for b in member.buckets)
        assert len(_log_rows(seeded_engine)) == 2
        assert _group(seeded_engine, "thunder").cached_member_points == 0

    def test_unknown_member(self, seeded_engine):
        with pytest.raises(NotFoundError):
            reset_member_points(seeded_engine, guild_id=GUILD_ID, member_id="nobody")


class TestMemberWithoutGang:
    def test_award_to_gangless_member_is_rejected(self, seeded_engine, award):
        def _insert(session):
            session.add(Member(guild_id=GUILD_ID, member_id="loner", display_name="Loner",
                               recent_messages=[]))

        store_for(seeded_engine).atomically("member:test:loner", _insert)
        with pytest.raises(ValidationError):
            award("loner", 5)
        with store_for(seeded_engine).read() as session:
            assert session.scalar(select(func.count(ActivityLog.id))) == 0

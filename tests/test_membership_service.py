"""
tests/test_membership_service.py — Gang switching & bucket history
===================================================================
"""

from __future__ import annotations

from sqlalchemy import func, select

from conftest import GUILD_ID
from gangledger.database.models import ActivityLog, Member
from gangledger.database.store import find_group, find_member, store_for
from gangledger.engine.events import RosterEntry
from gangledger.services.membership_service import (
    new_member,
    switch_group,
    sync_group_roster,
    sync_member_roles,
)


def _member(engine, member_id: str) -> Member:
    with store_for(engine).read() as session:
        return find_member(session, GUILD_ID, member_id)


class TestSwitchGroupInMemory:
    def _fresh(self, cfg) -> Member:
        return new_member(
            guild_id=GUILD_ID, member_id="m", display_name="M",
            group_id="sea-kings", group_name="Sea Kings",
            categories=cfg.member_categories,
        )

    def test_same_gang_is_a_no_op(self, cfg):
        member = self._fresh(cfg)
        assert switch_group(member, "sea-kings", "Sea Kings") is False
        assert len(member.buckets) == 1

    def test_new_gang_gets_zero_bucket(self, cfg):
        member = self._fresh(cfg)
        member.buckets[0].total_points = 7
        member.sync_mirror()

        assert switch_group(member, "thunder", "Thunder Titans", cfg.member_categories)
        assert member.current_group_id == "thunder"
        assert member.points == 0
        assert member.current_bucket.points_breakdown == cfg.member_categories.empty()

    def test_re_entry_restores_previous_bucket(self, cfg):
        member = self._fresh(cfg)
        member.buckets[0].total_points = 7
        member.buckets[0].weekly_points = 3
        member.sync_mirror()

        switch_group(member, "thunder", "Thunder Titans")
        switch_group(member, "sea-kings", "Sea Kings")
        assert member.points == 7
        assert member.weekly_points == 3
        assert len(member.buckets) == 2


class TestRegisterOrUpdateMember:
    def test_creates_member_with_zero_bucket(self, seeded_engine, register):
        member = register("u1", name="Alice")
        assert member.points == 0
        assert member.current_group_id == "sea-kings"
        assert member.current_group_name == "Sea Kings"
        assert member.last_active_at is None
        assert [b.group_id for b in member.buckets] == ["sea-kings"]

    def test_idempotent(self, seeded_engine, register):
        register("u1")
        register("u1")
        with store_for(seeded_engine).read() as session:
            assert session.scalar(select(func.count(Member.id))) == 1
        assert len(_member(seeded_engine, "u1").buckets) == 1

    def test_refreshes_display_name(self, seeded_engine, register):
        register("u1", name="Before")
        register("u1", name="After")
        assert _member(seeded_engine, "u1").display_name == "After"

    def test_round_trip_conserves_points(self, seeded_engine, register, award):
        """A → B → A with no awards while away restores exactly what A held."""
        register("u1")
        award("u1", 7, "games")
        before = _member(seeded_engine, "u1").current_bucket

        register("u1", "thunder")
        assert _member(seeded_engine, "u1").points == 0

        member = register("u1", "sea-kings")
        bucket = member.current_bucket
        assert member.points == 7
        assert bucket.points_breakdown == before.points_breakdown
        assert bucket.weekly_points_breakdown == before.weekly_points_breakdown

    def test_switch_refreshes_both_gangs(self, seeded_engine, register, award):
        register("u1")
        award("u1", 5)
        register("u1", "thunder")

        with store_for(seeded_engine).read() as session:
            old = find_group(session, GUILD_ID, "sea-kings")
            new = find_group(session, GUILD_ID, "thunder")
        assert (old.member_count, old.cached_member_points) == (0, 0)
        assert (new.member_count, new.cached_member_points) == (1, 0)

    def test_new_member_bumps_member_count(self, seeded_engine, register):
        register("u1")
        register("u2")
        with store_for(seeded_engine).read() as session:
            group = find_group(session, GUILD_ID, "sea-kings")
        assert group.member_count == 2
        assert group.cached_member_points == 0

    def test_switch_writes_no_log(self, seeded_engine, register):
        register("u1")
        register("u1", "thunder")
        with store_for(seeded_engine).read() as session:
            assert session.scalar(select(func.count(ActivityLog.id))) == 0


class TestSyncMemberRoles:
    def test_added_gang_role_moves_member(self, seeded_engine, cfg, register):
        register("u1")
        member = sync_member_roles(
            seeded_engine, cfg, guild_id=GUILD_ID, member_id="u1", display_name="U",
            before_roles=[501, 7], after_roles=[501, 7, 502],
        )
        assert member.current_group_id == "thunder"

    def test_first_gang_role_registers_member(self, seeded_engine, cfg):
        member = sync_member_roles(
            seeded_engine, cfg, guild_id=GUILD_ID, member_id="new", display_name="New",
            before_roles=[], after_roles=["503"],
        )
        assert member.current_group_id == "fluffy"

    def test_non_gang_role_is_ignored(self, seeded_engine, cfg):
        result = sync_member_roles(
            seeded_engine, cfg, guild_id=GUILD_ID, member_id="u9", display_name="U",
            before_roles=[], after_roles=[12345],
        )
        assert result is None
        assert _member(seeded_engine, "u9") is None

    def test_removed_role_changes_nothing(self, seeded_engine, cfg, register):
        register("u1", "thunder")
        result = sync_member_roles(
            seeded_engine, cfg, guild_id=GUILD_ID, member_id="u1", display_name="U",
            before_roles=[502], after_roles=[],
        )
        assert result is None
        assert _member(seeded_engine, "u1").current_group_id == "thunder"


class TestSyncGroupRoster:
    def _groups(self, engine) -> dict:
        with store_for(engine).read() as session:
            return {
                gid: find_group(session, GUILD_ID, gid)
                for gid in ("sea-kings", "thunder", "fluffy")
            }

    def test_mixed_roster(self, seeded_engine, cfg, register, award):
        register("u1")
        register("u4")
        award("u4", 5)
        roster = [
            RosterEntry("u1", "One", ("501",)),
            RosterEntry("u2", "Two", ("7", "502")),
            RosterEntry("u3", "Three", ("7",)),
            RosterEntry("u4", "Four", ("503",)),
        ]

        counts = sync_group_roster(seeded_engine, cfg, GUILD_ID, roster)

        assert counts == {"registered": 1, "moved": 1, "unchanged": 1, "skipped": 1}
        assert _member(seeded_engine, "u2").current_group_id == "thunder"
        assert _member(seeded_engine, "u3") is None
        assert _member(seeded_engine, "u4").current_group_id == "fluffy"

        groups = self._groups(seeded_engine)
        assert [groups[g].member_count for g in ("sea-kings", "thunder", "fluffy")] == [1, 1, 1]
        assert groups["sea-kings"].cached_member_points == 0

    def test_holder_of_current_gang_role_stays(self, seeded_engine, cfg, register):
        register("u1", "thunder")
        counts = sync_group_roster(
            seeded_engine, cfg, GUILD_ID, [RosterEntry("u1", "One", ("501", "502"))],
        )
        assert counts["unchanged"] == 1
        assert _member(seeded_engine, "u1").current_group_id == "thunder"

    def test_member_without_gang_roles_is_kept(self, seeded_engine, cfg, register):
        register("u1", "thunder")
        counts = sync_group_roster(seeded_engine, cfg, GUILD_ID, [RosterEntry("u1", "One")])
        assert counts["skipped"] == 1
        assert _member(seeded_engine, "u1").current_group_id == "thunder"

    def test_second_pass_changes_nothing(self, seeded_engine, cfg):
        roster = [RosterEntry("u1", "One", ("502",)), RosterEntry("u2", "Two", ("503",))]
        sync_group_roster(seeded_engine, cfg, GUILD_ID, roster)
        counts = sync_group_roster(seeded_engine, cfg, GUILD_ID, roster)
        assert counts == {"registered": 0, "moved": 0, "unchanged": 2, "skipped": 0}

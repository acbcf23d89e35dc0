"""
tests/test_ledger_engine.py — Pure points arithmetic
=====================================================

Category resolution, clamping, totals, and delta validation.  No database.
"""

from __future__ import annotations

import math

import pytest

from gangledger.constants import DEFAULT_MEMBER_CATEGORIES, MAX_POINTS
from gangledger.engine.events import AwardRequest
from gangledger.engine.ledger import (
    CategorySet,
    apply_points,
    breakdown_total,
    validate_delta,
)
from gangledger.errors import ValidationError

CATS = CategorySet.of(DEFAULT_MEMBER_CATEGORIES)


class TestCategorySet:
    def test_known_label_resolves_to_itself(self):
        assert CATS.resolve("twitter") == "twitter"

    def test_unknown_label_falls_back_to_other(self):
        assert CATS.resolve("memes") == "other"
        assert CATS.resolve(None) == "other"
        assert CATS.resolve("") == "other"

    def test_fallback_must_be_a_label(self):
        with pytest.raises(ValueError):
            CategorySet.of(["games"])

    def test_duplicate_labels_rejected(self):
        with pytest.raises(ValueError):
            CategorySet.of(["games", "games", "other"])

    def test_normalize_keeps_legacy_keys(self):
        """Labels from an older config must survive so totals still add up."""
        result = CATS.normalize({"legacyEvent": 4, "games": 1})
        assert result["legacyEvent"] == 4
        assert result["games"] == 1
        assert set(CATS.labels) <= set(result)


class TestApplyPoints:
    def test_total_beyond_column_range_rejected(self):
        with pytest.raises(ValidationError):
            apply_points({"games": MAX_POINTS}, {}, "twitter", 1, CATS)

    def test_award_adds_to_both_breakdowns(self):
        update = apply_points({}, {}, "games", 10, CATS)
        assert update.breakdown["games"] == 10
        assert update.weekly_breakdown["games"] == 10
        assert update.total == 10
        assert update.weekly_total == 10
        assert update.category == "games"

    def test_unknown_category_lands_in_other(self):
        update = apply_points({}, {}, "bogus", 3, CATS)
        assert update.breakdown["other"] == 3
        assert update.category == "other"

    def test_inputs_are_not_mutated(self):
        lifetime = {"games": 5}
        weekly = {"games": 5}
        apply_points(lifetime, weekly, "games", -2, CATS)
        assert lifetime == {"games": 5}
        assert weekly == {"games": 5}

    def test_award_then_larger_deduction_clamps_to_zero(self):
        """+10 then -15 in one category leaves 0, and the excess is dropped."""
        first = apply_points({}, {}, "games", 10, CATS)
        second = apply_points(first.breakdown, first.weekly_breakdown, "games", -15, CATS)
        assert second.breakdown["games"] == 0
        assert second.total == 0
        assert second.weekly_total == 0

    def test_deduction_excess_does_not_spill_into_other_categories(self):
        lifetime = {"games": 2, "twitter": 8}
        update = apply_points(lifetime, dict(lifetime), "games", -5, CATS)
        assert update.breakdown["games"] == 0
        assert update.breakdown["twitter"] == 8
        assert update.total == 8

    def test_weekly_clamps_independently(self):
        """Weekly may be lower than lifetime after a rollover."""
        update = apply_points({"games": 20}, {"games": 3}, "games", -5, CATS)
        assert update.breakdown["games"] == 15
        assert update.weekly_breakdown["games"] == 0
        assert update.total == 15
        assert update.weekly_total == 0

    @pytest.mark.parametrize(
        "deltas",
        [
            [5, -3, 7, -100, 2],
            [1] * 10 + [-4],
            [-1, -1, 50, -49],
        ],
    )
    def test_totals_equal_sum_and_never_negative(self, deltas):
        lifetime: dict[str, int] = {}
        weekly: dict[str, int] = {}
        for i, delta in enumerate(deltas):
            category = DEFAULT_MEMBER_CATEGORIES[i % len(DEFAULT_MEMBER_CATEGORIES)]
            update = apply_points(lifetime, weekly, category, delta, CATS)
            lifetime, weekly = update.breakdown, update.weekly_breakdown
            assert update.total == breakdown_total(lifetime)
            assert update.weekly_total == breakdown_total(weekly)
            assert all(v >= 0 for v in lifetime.values())
            assert all(v >= 0 for v in weekly.values())


class TestValidateDelta:
    @pytest.mark.parametrize("value", [0, True, False, 1.5, math.inf, math.nan, "5", None])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            validate_delta(value)

    def test_accepts_integers(self):
        assert validate_delta(7) == 7
        assert validate_delta(-3) == -3

    def test_accepts_integral_float(self):
        assert validate_delta(5.0) == 5
        assert isinstance(validate_delta(5.0), int)

    @pytest.mark.parametrize("value", [MAX_POINTS + 1, -(MAX_POINTS + 1), 2**63, 1e12])
    def test_rejects_values_beyond_column_range(self, value):
        with pytest.raises(ValidationError):
            validate_delta(value)

    def test_accepts_column_range_edges(self):
        assert validate_delta(MAX_POINTS) == MAX_POINTS
        assert validate_delta(-MAX_POINTS) == -MAX_POINTS


class TestAwardRequest:
    def test_requires_exactly_one_target(self):
        with pytest.raises(ValidationError):
            AwardRequest(guild_id="1", points=1, category="games")
        with pytest.raises(ValidationError):
            AwardRequest(
                guild_id="1", points=1, category="games",
                target_member_id="a", target_group_id="b",
            )

    def test_group_target(self):
        req = AwardRequest(guild_id="1", points=1, category="events", target_group_id="g")
        assert req.targets_group

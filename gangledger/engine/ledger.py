"""
gangledger.engine.ledger — Pure points arithmetic
==================================================

No I/O lives here.  Services load a bucket's breakdowns, call
:func:`apply_points`, and write the returned values back inside their own
transaction.

Rules:

1. Unknown categories land in the fallback (``other``) category.
2. The delta is added to the category in both the lifetime and the weekly
   breakdown.
3. Any category that went negative is clamped to zero.  The excess of a
   deduction is dropped, it does not spill into other categories.
4. Totals are *recomputed* as the sum of the breakdown, never kept as an
   independent running counter.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from gangledger.constants import FALLBACK_CATEGORY, MAX_POINTS
from gangledger.errors import ValidationError

__all__ = [
    "CategorySet",
    "PointsUpdate",
    "apply_points",
    "breakdown_total",
    "validate_delta",
]


@dataclass(frozen=True, slots=True)
class CategorySet:
    """The configured set of breakdown labels for one kind of bucket."""

    labels: tuple[str, ...]
    fallback: str = FALLBACK_CATEGORY

    def __post_init__(self) -> None:
        if not self.labels:
            raise ValueError("A category set needs at least one label")
        if self.fallback not in self.labels:
            raise ValueError(
                f"Fallback category {self.fallback!r} missing from {self.labels!r}"
            )
        if len(set(self.labels)) != len(self.labels):
            raise ValueError(f"Duplicate category labels in {self.labels!r}")

    @classmethod
    def of(cls, labels: Iterable[str], fallback: str = FALLBACK_CATEGORY) -> CategorySet:
        return cls(labels=tuple(labels), fallback=fallback)

    def resolve(self, category: str | None) -> str:
        """Map *category* onto a known label (exact match, else fallback)."""
        if category and category in self.labels:
            return category
        return self.fallback

    def empty(self) -> dict[str, int]:
        return {label: 0 for label in self.labels}

    def normalize(self, breakdown: Mapping[str, int] | None) -> dict[str, int]:
        """Return a fresh dict with every configured label present.

        Labels stored by an older category set are kept so the sum still
        matches the persisted total.
        """
        result = self.empty()
        for key, value in (breakdown or {}).items():
            result[key] = int(value)
        return result


@dataclass(frozen=True, slots=True)
class PointsUpdate:
    """Result of applying one delta to a bucket."""

    category: str
    breakdown: dict[str, int]
    weekly_breakdown: dict[str, int]
    total: int
    weekly_total: int


def breakdown_total(breakdown: Mapping[str, int] | None) -> int:
    return sum((breakdown or {}).values())


def _clamped(breakdown: dict[str, int]) -> dict[str, int]:
    return {key: max(value, 0) for key, value in breakdown.items()}


def apply_points(
    breakdown: Mapping[str, int] | None,
    weekly_breakdown: Mapping[str, int] | None,
    category: str | None,
    delta: int,
    categories: CategorySet,
) -> PointsUpdate:
    """Apply *delta* to *category* and return the new breakdowns and totals.

    The inputs are never mutated.  A total that would leave the point
    column range raises :class:`ValidationError`.
    """
    label = categories.resolve(category)

    lifetime = categories.normalize(breakdown)
    weekly = categories.normalize(weekly_breakdown)
    lifetime[label] += delta
    weekly[label] += delta

    lifetime = _clamped(lifetime)
    weekly = _clamped(weekly)
    if breakdown_total(lifetime) > MAX_POINTS:
        raise ValidationError(f"Total points would exceed {MAX_POINTS}")

    return PointsUpdate(
        category=label,
        breakdown=lifetime,
        weekly_breakdown=weekly,
        total=breakdown_total(lifetime),
        weekly_total=breakdown_total(weekly),
    )


def validate_delta(points: object) -> int:
    """Reject anything that is not a finite, non-zero integer in column range.

    Integral floats (``5.0``) are accepted and converted; ``bool`` is not a
    point value even though it subclasses ``int``.
    """
    if isinstance(points, bool):
        raise ValidationError("Points must be an integer, not a boolean")
    if isinstance(points, float):
        if not math.isfinite(points) or not points.is_integer():
            raise ValidationError(f"Points must be a whole number, got {points!r}")
        points = int(points)
    if not isinstance(points, int):
        raise ValidationError(f"Points must be an integer, got {type(points).__name__}")
    if points == 0:
        raise ValidationError("Points must be non-zero")
    if abs(points) > MAX_POINTS:
        raise ValidationError(f"Points must be at most {MAX_POINTS} in size, got {points}")
    return points

"""
gangledger.engine.activity — Message rate-limit rules
======================================================

Decides whether a chat message earns an activity point.  Pure functions
only: the caller hands in the member's recent-message window and last
activity time and persists what comes back, inside one per-member
transaction (see :mod:`gangledger.services.activity_service`).

Order of checks:

1. Trimmed content shorter than ``min_length`` → ``TOO_SHORT``.
2. Content is a greeting/filler string → ``FILLER``.
3. Window pruned to entries newer than ``now - window``, and to at most
   ``max_window_entries`` of the newest.
4. Exact duplicate of a windowed entry → ``DUPLICATE`` (still appended).
5. Last activity within the window → ``COOLDOWN`` (still appended).
6. Otherwise → ``QUALIFIED`` (appended).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from gangledger.constants import (
    ACTIVITY_WINDOW_SECONDS,
    FILLER_MESSAGES,
    MAX_WINDOW_ENTRIES,
    MIN_MESSAGE_LENGTH,
)

__all__ = [
    "ActivityRules",
    "MessageEvaluation",
    "MessageVerdict",
    "ensure_utc",
    "evaluate_message",
    "prune_window",
]


class MessageVerdict(enum.StrEnum):
    QUALIFIED = "qualified"
    TOO_SHORT = "too_short"
    FILLER = "filler"
    DUPLICATE = "duplicate"
    COOLDOWN = "cooldown"


@dataclass(frozen=True, slots=True)
class ActivityRules:
    """Tunable limits for message activity scoring."""

    min_length: int = MIN_MESSAGE_LENGTH
    window_seconds: int = ACTIVITY_WINDOW_SECONDS
    filler_messages: frozenset[str] = field(default=FILLER_MESSAGES)
    max_window_entries: int = MAX_WINDOW_ENTRIES

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.window_seconds)

    def cap(self, window: list[dict]) -> list[dict]:
        """The newest ``max_window_entries`` of *window* (oldest first)."""
        overflow = len(window) - self.max_window_entries
        return window[overflow:] if overflow > 0 else window


@dataclass(frozen=True, slots=True)
class MessageEvaluation:
    verdict: MessageVerdict
    content: str
    window: list[dict]

    @property
    def qualified(self) -> bool:
        return self.verdict is MessageVerdict.QUALIFIED


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _entry_time(entry: dict) -> datetime | None:
    raw = entry.get("timestamp")
    if not raw:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(raw))
    except (TypeError, ValueError):
        return None


def prune_window(window: list[dict] | None, now: datetime, rules: ActivityRules) -> list[dict]:
    """Keep only entries strictly newer than ``now - rules.window``.

    Malformed entries are dropped; the window is advisory state.  At most
    ``rules.max_window_entries`` of the newest entries survive.
    """
    cutoff = ensure_utc(now) - rules.window
    kept = []
    for entry in window or []:
        stamp = _entry_time(entry)
        if stamp is not None and stamp > cutoff:
            kept.append({"content": entry.get("content", ""), "timestamp": entry["timestamp"]})
    return rules.cap(kept)


def evaluate_message(
    content: str,
    window: list[dict] | None,
    last_active_at: datetime | None,
    now: datetime,
    rules: ActivityRules,
) -> MessageEvaluation:
    """Classify one message and return the window to persist."""
    now = ensure_utc(now)
    trimmed = (content or "").strip()
    pruned = prune_window(window, now, rules)

    if len(trimmed) < rules.min_length:
        return MessageEvaluation(MessageVerdict.TOO_SHORT, trimmed, pruned)
    if trimmed.lower() in rules.filler_messages:
        return MessageEvaluation(MessageVerdict.FILLER, trimmed, pruned)

    is_duplicate = any(entry["content"] == trimmed for entry in pruned)
    pruned = rules.cap([*pruned, {"content": trimmed, "timestamp": now.isoformat()}])

    if is_duplicate:
        return MessageEvaluation(MessageVerdict.DUPLICATE, trimmed, pruned)

    if last_active_at is not None and now - ensure_utc(last_active_at) < rules.window:
        return MessageEvaluation(MessageVerdict.COOLDOWN, trimmed, pruned)

    return MessageEvaluation(MessageVerdict.QUALIFIED, trimmed, pruned)

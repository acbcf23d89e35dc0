"""
gangledger.constants — Shared Constants
========================================

Single source of truth for defaults that the config loader falls back to
and that tests pin against.  Import from here instead of duplicating in
cogs, services, and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Point categories
# ---------------------------------------------------------------------------
FALLBACK_CATEGORY = "other"

# Member buckets.  Deployments override this in config.yaml.
DEFAULT_MEMBER_CATEGORIES: tuple[str, ...] = (
    "twitter",
    "games",
    "artAndMemes",
    "activity",
    "gangActivity",
    FALLBACK_CATEGORY,
)

# Points awarded to a gang directly (not via members).
DEFAULT_GROUP_CATEGORIES: tuple[str, ...] = (
    "events",
    "competitions",
    FALLBACK_CATEGORY,
)

ACTIVITY_CATEGORY = "activity"
ACTIVITY_REASON = "activity"

# ---------------------------------------------------------------------------
# Message activity rules
# ---------------------------------------------------------------------------
MIN_MESSAGE_LENGTH = 5
ACTIVITY_WINDOW_SECONDS = 5 * 60
# Newest entries kept in a member's recent-message window
MAX_WINDOW_ENTRIES = 50

FILLER_MESSAGES: frozenset[str] = frozenset({
    "hi",
    "hey",
    "hello",
    "gm",
    "good morning",
    "gn",
    "good night",
    ".",
    "..",
    "...",
})

# ---------------------------------------------------------------------------
# Store behaviour
# ---------------------------------------------------------------------------
MAX_CONFLICT_RETRIES = 3

# Point columns are 32-bit signed integers
MAX_POINTS = 2**31 - 1

# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------
RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

"""
gangledger.config — YAML Configuration Loader
==============================================

Reads ``config.yaml``: Discord identity, the static gang table (stable
gang ids bound to a role and a channel), the category sets for member and
gang breakdowns, and the message-activity limits.  Secrets
(``DISCORD_TOKEN``, ``DATABASE_URL``, ``JWT_SECRET``) stay in ``.env``.

Usage::

    from gangledger.config import load_config

    cfg = load_config()                        # ./config.yaml
    gang = cfg.group_for_channel("1349463574803906662")
    print(gang.name)                           # "Sea Kings"

Example ``config.yaml``::

    community_name: Pixel Gangs
    bot_prefix: "!"
    guild_id: "1234567890"
    dashboard_port: 8000
    admin_role_id: "42"
    default_group_id: sea-kings-1
    groups:
      - group_id: sea-kings-1
        name: Sea Kings
        role_id: "1353403611106770967"
        channel_id: "1349463574803906662"
    member_categories: [twitter, games, artAndMemes, activity, gangActivity, other]
    group_categories: [events, competitions, other]
    activity:
      min_length: 5
      window_seconds: 300
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from gangledger.constants import (
    ACTIVITY_CATEGORY,
    ACTIVITY_WINDOW_SECONDS,
    DEFAULT_GROUP_CATEGORIES,
    DEFAULT_MEMBER_CATEGORIES,
    FALLBACK_CATEGORY,
    FILLER_MESSAGES,
    MAX_WINDOW_ENTRIES,
    MIN_MESSAGE_LENGTH,
)
from gangledger.engine.activity import ActivityRules
from gangledger.engine.ledger import CategorySet


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GroupConfig:
    """One gang.  ``group_id`` must never change, even if the name does."""

    group_id: str
    name: str
    role_id: str
    channel_id: str


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str
    bot_prefix: str
    guild_id: str

    # Dashboard
    dashboard_port: int

    # Admin role required for /award and friends
    admin_role_id: str

    # Gangs
    groups: tuple[GroupConfig, ...]
    default_group_id: str

    # Points
    member_categories: CategorySet = field(
        default_factory=lambda: CategorySet.of(DEFAULT_MEMBER_CATEGORIES)
    )
    group_categories: CategorySet = field(
        default_factory=lambda: CategorySet.of(DEFAULT_GROUP_CATEGORIES)
    )
    activity_category: str = ACTIVITY_CATEGORY
    activity: ActivityRules = field(default_factory=ActivityRules)

    # Rollover schedule (UTC); weekday uses Python numbering, Monday=0
    weekly_reset_weekday: int = 6
    weekly_reset_hour: int = 0

    # Optional
    announce_channel_id: str | None = None
    # Re-derive every member's gang from their roles when the bot connects
    sync_roster_on_startup: bool = False

    def get_group(self, group_id: str) -> GroupConfig | None:
        for group in self.groups:
            if group.group_id == group_id:
                return group
        return None

    def group_for_channel(self, channel_id: str | int) -> GroupConfig | None:
        """Resolve a gang by its chat channel; ``None`` if not a gang channel."""
        channel_id = str(channel_id).strip()
        for group in self.groups:
            if group.channel_id == channel_id:
                return group
        return None

    def group_for_roles(self, role_ids: Iterable[str | int]) -> GroupConfig | None:
        """First configured gang whose role the member holds."""
        held = {str(r) for r in role_ids}
        for group in self.groups:
            if group.role_id in held:
                return group
        return None

    def group_for_new_role(
        self,
        before_roles: Iterable[str | int],
        after_roles: Iterable[str | int],
    ) -> GroupConfig | None:
        """The gang whose role appears in *after_roles* but not *before_roles*."""
        before = {str(r) for r in before_roles}
        added = {str(r) for r in after_roles} - before
        if not added:
            return None
        return self.group_for_roles(added)

    @property
    def group_ids(self) -> tuple[str, ...]:
        return tuple(g.group_id for g in self.groups)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
def _parse_groups(raw_groups: list[dict]) -> tuple[GroupConfig, ...]:
    groups = tuple(
        GroupConfig(
            group_id=str(g["group_id"]).strip(),
            name=str(g["name"]),
            role_id=str(g["role_id"]).strip(),
            channel_id=str(g["channel_id"]).strip(),
        )
        for g in raw_groups
    )
    seen: set[str] = set()
    for group in groups:
        if group.group_id in seen:
            raise ValueError(f"Duplicate group_id in config: {group.group_id!r}")
        seen.add(group.group_id)
    return groups


def _parse_categories(raw: list[str] | None, default: tuple[str, ...]) -> CategorySet:
    labels = tuple(raw) if raw else default
    if FALLBACK_CATEGORY not in labels:
        labels = (*labels, FALLBACK_CATEGORY)
    return CategorySet.of(labels)


def _parse_activity(raw: dict | None) -> ActivityRules:
    raw = raw or {}
    filler = raw.get("filler_messages")
    max_entries = int(raw.get("max_window_entries", MAX_WINDOW_ENTRIES))
    if max_entries < 1:
        raise ValueError(f"activity.max_window_entries must be at least 1, got {max_entries}")
    return ActivityRules(
        min_length=int(raw.get("min_length", MIN_MESSAGE_LENGTH)),
        window_seconds=int(raw.get("window_seconds", ACTIVITY_WINDOW_SECONDS)),
        filler_messages=(
            frozenset(str(f).lower() for f in filler) if filler else FILLER_MESSAGES
        ),
        max_window_entries=max_entries,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_config(raw: dict) -> LedgerConfig:
    """Build a :class:`LedgerConfig` from an already-parsed mapping.

    Raises
    ------
    KeyError
        If a required key is missing.
    ValueError
        If gang ids repeat, ``default_group_id`` names no configured gang, or
        ``activity.max_window_entries`` is below 1.
    """
    groups = _parse_groups(raw["groups"])
    default_group_id = str(raw.get("default_group_id") or (groups[0].group_id if groups else ""))
    if default_group_id not in {g.group_id for g in groups}:
        raise ValueError(f"default_group_id {default_group_id!r} is not a configured group")

    member_categories = _parse_categories(raw.get("member_categories"), DEFAULT_MEMBER_CATEGORIES)
    activity_category = str(raw.get("activity_category", ACTIVITY_CATEGORY))

    return LedgerConfig(
        community_name=raw["community_name"],
        bot_prefix=raw.get("bot_prefix", "!"),
        guild_id=str(raw["guild_id"]),
        dashboard_port=int(raw.get("dashboard_port", 8000)),
        admin_role_id=str(raw["admin_role_id"]),
        groups=groups,
        default_group_id=default_group_id,
        member_categories=member_categories,
        group_categories=_parse_categories(raw.get("group_categories"), DEFAULT_GROUP_CATEGORIES),
        activity_category=member_categories.resolve(activity_category),
        activity=_parse_activity(raw.get("activity")),
        weekly_reset_weekday=int(raw.get("weekly_reset_weekday", 6)),
        weekly_reset_hour=int(raw.get("weekly_reset_hour", 0)),
        announce_channel_id=(
            str(raw["announce_channel_id"]) if raw.get("announce_channel_id") else None
        ),
        sync_roster_on_startup=bool(raw.get("sync_roster_on_startup", False)),
    )


def load_config(path: str | Path = "config.yaml") -> LedgerConfig:
    """Read *path* and return a :class:`LedgerConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    return parse_config(raw)

"""
gangledger.engine.events — Inbound request envelopes
=====================================================

Every trigger the ledger reacts to (an award command, an observed chat
message, a role change, a roster snapshot) is normalized into one of these
before a service sees it.  Channel → gang and role → gang resolution
happens upstream, in the cogs, against :class:`gangledger.config.LedgerConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from gangledger.errors import ValidationError

__all__ = ["AwardRequest", "GroupSwitch", "MessageObserved", "RosterEntry"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class AwardRequest:
    """A manual award or deduction aimed at exactly one member or gang."""

    guild_id: str
    points: int
    category: str
    target_member_id: str | None = None
    target_group_id: str | None = None
    display_name: str | None = None
    awarded_by: str | None = None
    awarded_by_name: str | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        if (self.target_member_id is None) == (self.target_group_id is None):
            raise ValidationError(
                "An award targets exactly one of a member or a gang"
            )

    @property
    def targets_group(self) -> bool:
        return self.target_group_id is not None


@dataclass(frozen=True, slots=True)
class MessageObserved:
    """A chat message seen in a channel.

    ``group_id`` is ``None`` when the channel is not a gang channel; such
    messages are ignored without error.
    """

    guild_id: str
    channel_id: str
    member_id: str
    display_name: str
    content: str
    group_id: str | None = None
    group_name: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class GroupSwitch:
    """A member's resolved gang, driven by a role change."""

    guild_id: str
    member_id: str
    display_name: str
    group_id: str
    group_name: str


@dataclass(frozen=True, slots=True)
class RosterEntry:
    """One guild member as seen in a full roster snapshot."""

    member_id: str
    display_name: str
    role_ids: tuple[str, ...] = ()

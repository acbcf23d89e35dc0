"""
gangledger.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- members             — Community member profiles, scoped by guild
- member_group_points — Per-member, per-gang point bucket (one row per gang
                        the member has ever belonged to)
- groups              — Gangs seeded from config.yaml, with direct points
                        and cached member aggregates
- activity_log        — Append-only audit trail of every point mutation

``members.points`` / ``weekly_points`` mirror the bucket that matches
``current_group_id``.  ``groups.cached_member_points`` is a derived cache
recomputed by :mod:`gangledger.services.aggregation_service`.

``Member`` and ``Group`` carry a ``version`` column used by SQLAlchemy's
optimistic concurrency check; a concurrent writer surfaces as
``StaleDataError`` and is retried by :class:`EntityStore`.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all GangLedger ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TargetType(enum.StrEnum):
    MEMBER = "member"
    GROUP = "group"


class PointAction(enum.StrEnum):
    AWARD = "award"
    DEDUCT = "deduct"

    @classmethod
    def for_delta(cls, points: int) -> PointAction:
        return cls.AWARD if points >= 0 else cls.DEDUCT


# ---------------------------------------------------------------------------
# Member: community member profile
# ---------------------------------------------------------------------------
class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    member_id: Mapped[str] = mapped_column(String(32), nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    current_group_id: Mapped[str | None] = mapped_column(String(64), default=None)
    current_group_name: Mapped[str | None] = mapped_column(String(100), default=None)
    points: Mapped[int] = mapped_column(Integer, default=0)
    weekly_points: Mapped[int] = mapped_column(Integer, default=0)
    message_count: Mapped[int] = mapped_column(Integer, default=0)
    weekly_message_count: Mapped[int] = mapped_column(Integer, default=0)
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_weekly_reset: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    # [{"content": str, "timestamp": iso8601}]: dedup only, safe to lose
    recent_messages: Mapped[list | None] = mapped_column(JSONB, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    buckets: Mapped[list[MemberGroupPoints]] = relationship(
        back_populates="member",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MemberGroupPoints.id",
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        UniqueConstraint("guild_id", "member_id", name="uq_members_guild_member"),
        Index("ix_members_guild_points", "guild_id", "points"),
        Index("ix_members_guild_weekly", "guild_id", "weekly_points"),
        Index("ix_members_group_points", "current_group_id", "points"),
        Index("ix_members_group_weekly", "current_group_id", "weekly_points"),
    )

    def bucket_for(self, group_id: str | None) -> MemberGroupPoints | None:
        """Return the bucket for *group_id*, or ``None`` if never joined."""
        if group_id is None:
            return None
        for bucket in self.buckets:
            if bucket.group_id == group_id:
                return bucket
        return None

    @property
    def current_bucket(self) -> MemberGroupPoints | None:
        return self.bucket_for(self.current_group_id)

    def sync_mirror(self) -> None:
        """Copy the current gang's bucket totals onto the member row."""
        bucket = self.current_bucket
        self.points = bucket.total_points if bucket else 0
        self.weekly_points = bucket.weekly_points if bucket else 0

    def __repr__(self) -> str:
        return (
            f"<Member id={self.member_id} name={self.display_name!r} "
            f"gang={self.current_group_id!r} pts={self.points}>"
        )


# ---------------------------------------------------------------------------
# MemberGroupPoints: per-member, per-gang bucket
# ---------------------------------------------------------------------------
class MemberGroupPoints(Base):
    __tablename__ = "member_group_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    group_id: Mapped[str] = mapped_column(String(64), nullable=False)
    group_name: Mapped[str] = mapped_column(String(100), nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    weekly_points: Mapped[int] = mapped_column(Integer, default=0)
    points_breakdown: Mapped[dict] = mapped_column(JSONB, default=dict)
    weekly_points_breakdown: Mapped[dict] = mapped_column(JSONB, default=dict)

    member: Mapped[Member] = relationship(back_populates="buckets")

    __table_args__ = (
        UniqueConstraint("member_pk", "group_id", name="uq_member_group_points"),
    )

    def __repr__(self) -> str:
        return (
            f"<MemberGroupPoints member={self.member_pk} gang={self.group_id!r} "
            f"total={self.total_points} weekly={self.weekly_points}>"
        )


# ---------------------------------------------------------------------------
# Group: a gang, seeded from config.yaml
# ---------------------------------------------------------------------------
class Group(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    group_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role_id: Mapped[str | None] = mapped_column(String(32), default=None)
    channel_id: Mapped[str | None] = mapped_column(String(32), default=None)

    # Points awarded to the gang itself, not via members
    direct_points: Mapped[int] = mapped_column(Integer, default=0)
    weekly_direct_points: Mapped[int] = mapped_column(Integer, default=0)
    points_breakdown: Mapped[dict] = mapped_column(JSONB, default=dict)
    weekly_points_breakdown: Mapped[dict] = mapped_column(JSONB, default=dict)

    # Derived: recomputed from members by the aggregation service
    cached_member_points: Mapped[int] = mapped_column(Integer, default=0)
    cached_weekly_member_points: Mapped[int] = mapped_column(Integer, default=0)
    member_count: Mapped[int] = mapped_column(Integer, default=0)

    message_count: Mapped[int] = mapped_column(Integer, default=0)
    weekly_message_count: Mapped[int] = mapped_column(Integer, default=0)
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_weekly_reset: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        UniqueConstraint("guild_id", "group_id", name="uq_groups_guild_group"),
        Index("ix_groups_channel", "channel_id"),
    )

    @hybrid_property
    def total_score(self) -> int:
        return self.direct_points + self.cached_member_points

    @hybrid_property
    def weekly_total_score(self) -> int:
        return self.weekly_direct_points + self.cached_weekly_member_points

    def __repr__(self) -> str:
        return f"<Group id={self.group_id!r} name={self.name!r} score={self.total_score}>"


# ---------------------------------------------------------------------------
# ActivityLog: append-only audit trail
# ---------------------------------------------------------------------------
class ActivityLog(Base):
    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    target_type: Mapped[str] = mapped_column(String(10), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_name: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(10), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    awarded_by: Mapped[str | None] = mapped_column(String(32), default=None)
    awarded_by_name: Mapped[str | None] = mapped_column(String(100), default=None)
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_activity_log_guild_time", "guild_id", "created_at"),
        Index("ix_activity_log_target_time", "target_id", "created_at"),
        Index("ix_activity_log_created", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ActivityLog id={self.id} {self.target_type}={self.target_id} "
            f"{self.action} {self.points:+d}>"
        )

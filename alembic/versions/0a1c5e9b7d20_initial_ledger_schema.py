"""Initial ledger schema: members, buckets, gangs, activity log

Revision ID: 0a1c5e9b7d20
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1c5e9b7d20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str, *, server_default: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=True,
        server_default=sa.func.now() if server_default else None,
    )


def upgrade() -> None:
    """Create the four ledger tables."""
    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.String(32), nullable=False),
        sa.Column("member_id", sa.String(32), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("current_group_id", sa.String(64), nullable=True),
        sa.Column("current_group_name", sa.String(100), nullable=True),
        sa.Column("points", sa.Integer(), nullable=True),
        sa.Column("weekly_points", sa.Integer(), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=True),
        sa.Column("weekly_message_count", sa.Integer(), nullable=True),
        _timestamp("last_active_at"),
        _timestamp("last_weekly_reset"),
        sa.Column("recent_messages", JSONB(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        _timestamp("created_at", server_default=True),
        _timestamp("updated_at", server_default=True),
        sa.UniqueConstraint("guild_id", "member_id", name="uq_members_guild_member"),
    )
    op.create_index("ix_members_guild_points", "members", ["guild_id", "points"])
    op.create_index("ix_members_guild_weekly", "members", ["guild_id", "weekly_points"])
    op.create_index("ix_members_group_points", "members", ["current_group_id", "points"])
    op.create_index("ix_members_group_weekly", "members", ["current_group_id", "weekly_points"])

    op.create_table(
        "member_group_points",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "member_pk",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("group_id", sa.String(64), nullable=False),
        sa.Column("group_name", sa.String(100), nullable=False),
        sa.Column("total_points", sa.Integer(), nullable=True),
        sa.Column("weekly_points", sa.Integer(), nullable=True),
        sa.Column("points_breakdown", JSONB(), nullable=True),
        sa.Column("weekly_points_breakdown", JSONB(), nullable=True),
        sa.UniqueConstraint("member_pk", "group_id", name="uq_member_group_points"),
    )

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.String(32), nullable=False),
        sa.Column("group_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("role_id", sa.String(32), nullable=True),
        sa.Column("channel_id", sa.String(32), nullable=True),
        sa.Column("direct_points", sa.Integer(), nullable=True),
        sa.Column("weekly_direct_points", sa.Integer(), nullable=True),
        sa.Column("points_breakdown", JSONB(), nullable=True),
        sa.Column("weekly_points_breakdown", JSONB(), nullable=True),
        sa.Column("cached_member_points", sa.Integer(), nullable=True),
        sa.Column("cached_weekly_member_points", sa.Integer(), nullable=True),
        sa.Column("member_count", sa.Integer(), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=True),
        sa.Column("weekly_message_count", sa.Integer(), nullable=True),
        _timestamp("last_active_at"),
        _timestamp("last_weekly_reset"),
        sa.Column("version", sa.Integer(), nullable=False),
        _timestamp("created_at", server_default=True),
        sa.UniqueConstraint("guild_id", "group_id", name="uq_groups_guild_group"),
    )
    op.create_index("ix_groups_channel", "groups", ["channel_id"])

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.String(32), nullable=False),
        sa.Column("target_type", sa.String(10), nullable=False),
        sa.Column("target_id", sa.String(64), nullable=False),
        sa.Column("target_name", sa.String(100), nullable=False),
        sa.Column("action", sa.String(10), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("awarded_by", sa.String(32), nullable=True),
        sa.Column("awarded_by_name", sa.String(100), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _timestamp("created_at", server_default=True),
    )
    op.create_index("ix_activity_log_guild_time", "activity_log", ["guild_id", "created_at"])
    op.create_index("ix_activity_log_target_time", "activity_log", ["target_id", "created_at"])
    op.create_index("ix_activity_log_created", "activity_log", ["created_at"])


def downgrade() -> None:
    """Drop every ledger table."""
    op.drop_index("ix_activity_log_created", table_name="activity_log")
    op.drop_index("ix_activity_log_target_time", table_name="activity_log")
    op.drop_index("ix_activity_log_guild_time", table_name="activity_log")
    op.drop_table("activity_log")

    op.drop_index("ix_groups_channel", table_name="groups")
    op.drop_table("groups")

    op.drop_table("member_group_points")

    op.drop_index("ix_members_group_weekly", table_name="members")
    op.drop_index("ix_members_group_points", table_name="members")
    op.drop_index("ix_members_guild_weekly", table_name="members")
    op.drop_index("ix_members_guild_points", table_name="members")
    op.drop_table("members")

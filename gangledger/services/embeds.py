"""
gangledger.services.embeds — Discord embed builders
====================================================

All embed construction lives here so cogs only supply data.  Builders
take the plain dicts / standings returned by the aggregation service.
"""

from __future__ import annotations

import discord

from gangledger.constants import RANK_BADGES
from gangledger.services.aggregation_service import GroupStanding, MemberStanding


def _badge(rank: int) -> str:
    return RANK_BADGES[rank - 1] if rank <= len(RANK_BADGES) else f"**#{rank}**"


def _breakdown_lines(breakdown: dict[str, int]) -> str:
    lines = [f"{label}: {value}" for label, value in breakdown.items() if value]
    return "\n".join(lines) or "No points yet"


def build_member_leaderboard_embed(
    standings: list[MemberStanding], *, title: str, weekly: bool,
) -> discord.Embed:
    if standings:
        description = "\n".join(
            f"{_badge(s.rank)} **{s.display_name}** ({s.group_name or 'no gang'}): {s.points} pts"
            for s in standings
        )
    else:
        description = "No points have been earned yet."
    embed = discord.Embed(
        title=f"\U0001f3c6 {title}",
        description=description,
        color=discord.Color.gold(),
    )
    embed.set_footer(text="Weekly points" if weekly else "All-time points")
    return embed


def build_group_leaderboard_embed(
    standings: list[GroupStanding], *, title: str, weekly: bool,
) -> discord.Embed:
    embed = discord.Embed(title=f"⚔️ {title}", color=discord.Color.red())
    for s in standings:
        embed.add_field(
            name=f"{_badge(s.rank)} {s.name}",
            value=(
                f"Total: **{s.total_score}**\n"
                f"Members: {s.member_points} ({s.member_count})\n"
                f"Gang: {s.direct_points}"
            ),
            inline=True,
        )
    if not standings:
        embed.description = "No gangs configured."
    embed.set_footer(text="Weekly points" if weekly else "All-time points")
    return embed


def build_group_summary_embed(summary: dict) -> discord.Embed:
    embed = discord.Embed(
        title=f"{summary['name']}",
        description=f"Rank **#{summary['rank']}** with **{summary['total_score']}** points",
        color=discord.Color.blurple(),
    )
    embed.add_field(name="Members", value=str(summary["member_count"]), inline=True)
    embed.add_field(name="Member points", value=str(summary["member_points"]), inline=True)
    embed.add_field(name="Gang points", value=str(summary["direct_points"]), inline=True)
    embed.add_field(name="Messages", value=str(summary["message_count"]), inline=True)
    embed.add_field(name="Breakdown", value=_breakdown_lines(summary["breakdown"]), inline=False)
    top = summary["top_members"]
    embed.add_field(
        name="Top members",
        value="\n".join(
            f"{_badge(m['rank'])} {m['display_name']}: {m['points']}" for m in top
        ) or "Nobody has scored yet",
        inline=False,
    )
    return embed


def build_member_profile_embed(profile: dict, avatar_url: str | None = None) -> discord.Embed:
    embed = discord.Embed(
        title=profile["display_name"],
        description=f"Gang: **{profile['group_name'] or 'none'}**",
        color=discord.Color.green(),
    )
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    embed.add_field(
        name="Points",
        value=f"{profile['points']} (rank #{profile['rank']})",
        inline=True,
    )
    embed.add_field(
        name="This week",
        value=f"{profile['weekly_points']} (rank #{profile['weekly_rank']})",
        inline=True,
    )
    embed.add_field(name="Messages", value=str(profile["message_count"]), inline=True)
    current = next((b for b in profile["buckets"] if b["current"]), None)
    if current:
        embed.add_field(
            name="Breakdown",
            value=_breakdown_lines(current["points_breakdown"]),
            inline=False,
        )
    past = [b for b in profile["buckets"] if not b["current"] and b["total_points"]]
    if past:
        embed.add_field(
            name="Earlier gangs",
            value="\n".join(f"{b['group_name']}: {b['total_points']}" for b in past),
            inline=False,
        )
    return embed


def build_award_embed(
    *, target_name: str, points: int, category: str, total: int,
    reason: str | None, admin_name: str,
) -> discord.Embed:
    verb = "awarded to" if points >= 0 else "deducted from"
    embed = discord.Embed(
        title="✅ Points updated",
        description=f"**{abs(points)}** {category} points {verb} **{target_name}**.",
        color=discord.Color.green() if points >= 0 else discord.Color.orange(),
    )
    embed.add_field(name="New total", value=str(total), inline=True)
    if reason:
        embed.add_field(name="Reason", value=reason, inline=False)
    embed.set_footer(text=f"By {admin_name}")
    return embed

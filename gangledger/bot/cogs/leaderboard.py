"""
gangledger.bot.cogs.leaderboard — Leaderboard & info commands
==============================================================

Read-only slash commands for everyone:
- /leaderboard — top members, all-time or weekly, optionally per gang
- /gang-leaderboard — gangs by total score
- /ganginfo — one gang's standing, breakdown and best members
- /userinfo — a member's points, rank and gang history
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from gangledger.database.engine import run_db
from gangledger.errors import NotFoundError
from gangledger.services.aggregation_service import (
    group_summary,
    member_profile,
    top_groups,
    top_members,
)
from gangledger.services.embeds import (
    build_group_leaderboard_embed,
    build_group_summary_embed,
    build_member_leaderboard_embed,
    build_member_profile_embed,
)

if TYPE_CHECKING:
    from gangledger.bot.core import GangLedgerBot

logger = logging.getLogger(__name__)


class Leaderboard(commands.Cog, name="Leaderboard"):
    """Public standings."""

    def __init__(self, bot: GangLedgerBot) -> None:
        self.bot = bot

    async def _gang_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        current = current.lower()
        return [
            app_commands.Choice(name=g.name, value=g.group_id)
            for g in self.bot.cfg.groups
            if current in g.name.lower()
        ][:25]

    @app_commands.command(name="leaderboard", description="Top members by points.")
    @app_commands.describe(
        weekly="Show this week's points instead of all-time",
        gang="Only members of this gang",
        limit="How many members to show (max 25)",
    )
    async def leaderboard(
        self,
        interaction: discord.Interaction,
        weekly: bool = False,
        gang: str | None = None,
        limit: app_commands.Range[int, 1, 25] = 10,
    ) -> None:
        await interaction.response.defer()
        standings = await run_db(
            top_members,
            self.bot.engine,
            str(interaction.guild_id),
            group_id=gang,
            weekly=weekly,
            limit=limit,
        )
        title = "Weekly Leaderboard" if weekly else "Leaderboard"
        if gang:
            group = self.bot.cfg.get_group(gang)
            title = f"{title} · {group.name if group else gang}"
        await interaction.followup.send(
            embed=build_member_leaderboard_embed(standings, title=title, weekly=weekly),
        )

    leaderboard.autocomplete("gang")(_gang_autocomplete)

    @app_commands.command(name="gang-leaderboard", description="Gangs ranked by total score.")
    @app_commands.describe(weekly="Show this week's scores instead of all-time")
    async def gang_leaderboard(
        self, interaction: discord.Interaction, weekly: bool = False,
    ) -> None:
        await interaction.response.defer()
        standings = await run_db(
            top_groups, self.bot.engine, str(interaction.guild_id), weekly=weekly,
        )
        title = "Weekly Gang Standings" if weekly else "Gang Standings"
        await interaction.followup.send(
            embed=build_group_leaderboard_embed(standings, title=title, weekly=weekly),
        )

    @app_commands.command(name="ganginfo", description="Detailed information about a gang.")
    @app_commands.describe(gang="The gang to look up", weekly="Use this week's numbers")
    async def ganginfo(
        self, interaction: discord.Interaction, gang: str, weekly: bool = False,
    ) -> None:
        await interaction.response.defer()
        try:
            summary = await run_db(
                group_summary, self.bot.engine, str(interaction.guild_id), gang, weekly=weekly,
            )
        except NotFoundError:
            await interaction.followup.send(f"Gang not found: `{gang}`")
            return
        await interaction.followup.send(embed=build_group_summary_embed(summary))

    ganginfo.autocomplete("gang")(_gang_autocomplete)

    @app_commands.command(name="userinfo", description="Points and rank of a member.")
    @app_commands.describe(member="Member to look up (defaults to you)")
    async def userinfo(
        self, interaction: discord.Interaction, member: discord.Member | None = None,
    ) -> None:
        target = member or interaction.user
        await interaction.response.defer()
        try:
            profile = await run_db(
                member_profile, self.bot.engine, str(interaction.guild_id), str(target.id),
            )
        except NotFoundError:
            await interaction.followup.send(
                f"**{target.display_name}** has not earned any points yet."
            )
            return
        await interaction.followup.send(
            embed=build_member_profile_embed(profile, target.display_avatar.url),
        )


async def setup(bot: GangLedgerBot) -> None:
    await bot.add_cog(Leaderboard(bot))

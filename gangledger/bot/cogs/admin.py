"""
gangledger.bot.cogs.admin — Admin Slash Commands
=================================================

Discord slash commands for gang admins:
- /award — award points to a member in a category
- /deduct — remove points from a member (categories floor at 0)
- /award-gang — award points to a gang's own pool
- /reset-user — zero every bucket of one member
- /reset-weekly — run the weekly rollover now
- /reset-all — wipe weekly and lifetime points (needs ``confirm``)
- /syncgangs — re-derive every member's gang from their roles

All commands require the configured ``admin_role_id``.  Ledger
rejections (unknown member, bad amount) come back as ephemeral replies.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from gangledger.bot.cogs.membership import roster_from_members
from gangledger.database.engine import run_db
from gangledger.errors import ConflictError, NotFoundError, StoreUnavailableError, ValidationError
from gangledger.services.embeds import build_award_embed
from gangledger.services.ledger_service import (
    award_group_points,
    award_member_points,
    reset_member_points,
)
from gangledger.services.membership_service import sync_group_roster
from gangledger.services.rollover_service import reset_all, reset_weekly

if TYPE_CHECKING:
    from gangledger.bot.core import GangLedgerBot

logger = logging.getLogger(__name__)


def is_admin():
    """Check that the invoking user holds the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: GangLedgerBot = interaction.client  # type: ignore[assignment]
        if not interaction.user or not hasattr(interaction.user, "roles"):
            return False
        return any(str(role.id) == bot.cfg.admin_role_id for role in interaction.user.roles)
    return app_commands.check(predicate)


class Admin(commands.Cog, name="Admin"):
    """Manual point management."""

    def __init__(self, bot: GangLedgerBot) -> None:
        self.bot = bot

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError,
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            message = "❌ You need the admin role to use this command."
        else:
            logger.exception("Admin command failed", exc_info=error)
            message = "❌ Something went wrong, check the bot logs."
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    # -------------------------------------------------------------------
    # Autocomplete
    # -------------------------------------------------------------------
    async def _member_category_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        return [
            app_commands.Choice(name=label, value=label)
            for label in self.bot.cfg.member_categories.labels
            if current.lower() in label.lower()
        ][:25]

    async def _group_category_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        return [
            app_commands.Choice(name=label, value=label)
            for label in self.bot.cfg.group_categories.labels
            if current.lower() in label.lower()
        ][:25]

    async def _gang_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        return [
            app_commands.Choice(name=g.name, value=g.group_id)
            for g in self.bot.cfg.groups
            if current.lower() in g.name.lower()
        ][:25]

    # -------------------------------------------------------------------
    # Shared member path
    # -------------------------------------------------------------------
    async def _change_member_points(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        points: int,
        category: str,
        reason: str | None,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            updated = await run_db(
                award_member_points,
                self.bot.engine,
                guild_id=str(interaction.guild_id),
                member_id=str(member.id),
                display_name=member.display_name,
                points=points,
                category=category,
                categories=self.bot.cfg.member_categories,
                awarded_by=str(interaction.user.id),
                awarded_by_name=interaction.user.display_name,
                reason=reason,
            )
        except NotFoundError:
            await interaction.followup.send(
                f"❌ **{member.display_name}** is not registered in any gang yet.",
                ephemeral=True,
            )
            return
        except ValidationError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        except (ConflictError, StoreUnavailableError) as exc:
            logger.warning("Award to %s failed: %s", member.id, exc)
            await interaction.followup.send("❌ The ledger is busy, try again.", ephemeral=True)
            return

        await interaction.followup.send(
            embed=build_award_embed(
                target_name=member.display_name,
                points=points,
                category=self.bot.cfg.member_categories.resolve(category),
                total=updated.points,
                reason=reason,
                admin_name=interaction.user.display_name,
            ),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /award and /deduct
    # -------------------------------------------------------------------
    @app_commands.command(name="award", description="Award points to a member.")
    @app_commands.describe(
        member="The member to award",
        points="How many points",
        category="Point category",
        reason="Why the points were awarded",
    )
    @is_admin()
    async def award(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        points: app_commands.Range[int, 1],
        category: str,
        reason: str | None = None,
    ) -> None:
        await self._change_member_points(interaction, member, points, category, reason)

    award.autocomplete("category")(_member_category_autocomplete)

    @app_commands.command(name="deduct", description="Remove points from a member.")
    @app_commands.describe(
        member="The member to deduct from",
        points="How many points to remove",
        category="Point category",
        reason="Why the points were removed",
    )
    @is_admin()
    async def deduct(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        points: app_commands.Range[int, 1],
        category: str,
        reason: str | None = None,
    ) -> None:
        await self._change_member_points(interaction, member, -points, category, reason)

    deduct.autocomplete("category")(_member_category_autocomplete)

    # -------------------------------------------------------------------
    # /award-gang
    # -------------------------------------------------------------------
    @app_commands.command(name="award-gang", description="Award points to a gang.")
    @app_commands.describe(
        gang="The gang to award",
        points="How many points (negative to deduct)",
        category="Point category",
        reason="Why the points were awarded",
    )
    @is_admin()
    async def award_gang(
        self,
        interaction: discord.Interaction,
        gang: str,
        points: int,
        category: str,
        reason: str | None = None,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            group = await run_db(
                award_group_points,
                self.bot.engine,
                guild_id=str(interaction.guild_id),
                group_id=gang,
                points=points,
                category=category,
                categories=self.bot.cfg.group_categories,
                awarded_by=str(interaction.user.id),
                awarded_by_name=interaction.user.display_name,
                reason=reason,
            )
        except NotFoundError:
            await interaction.followup.send(f"❌ Gang not found: `{gang}`", ephemeral=True)
            return
        except ValidationError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return

        await interaction.followup.send(
            embed=build_award_embed(
                target_name=group.name,
                points=points,
                category=self.bot.cfg.group_categories.resolve(category),
                total=group.direct_points,
                reason=reason,
                admin_name=interaction.user.display_name,
            ),
            ephemeral=True,
        )

    award_gang.autocomplete("gang")(_gang_autocomplete)
    award_gang.autocomplete("category")(_group_category_autocomplete)

    # -------------------------------------------------------------------
    # /reset-user and /reset-weekly
    # -------------------------------------------------------------------
    @app_commands.command(name="reset-user", description="Zero all points of one member.")
    @app_commands.describe(member="The member to reset")
    @is_admin()
    async def reset_user(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            await run_db(
                reset_member_points,
                self.bot.engine,
                guild_id=str(interaction.guild_id),
                member_id=str(member.id),
            )
        except NotFoundError:
            await interaction.followup.send(
                f"❌ **{member.display_name}** is not registered.", ephemeral=True,
            )
            return
        await interaction.followup.send(
            f"✅ Reset all points for **{member.display_name}**.", ephemeral=True,
        )

    @app_commands.command(name="reset-weekly", description="Run the weekly points reset now.")
    @is_admin()
    async def reset_weekly_cmd(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        summary = await run_db(reset_weekly, self.bot.engine, str(interaction.guild_id))
        await interaction.followup.send(
            f"✅ Weekly reset done: {summary.members_reset} members, "
            f"{summary.groups_reset} gangs.",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /reset-all
    # -------------------------------------------------------------------
    @app_commands.command(name="reset-all", description="Wipe ALL points, lifetime included.")
    @app_commands.describe(confirm="Set to True to really wipe every member and gang")
    @is_admin()
    async def reset_all_cmd(self, interaction: discord.Interaction, confirm: bool = False) -> None:
        if not confirm:
            await interaction.response.send_message(
                "⚠️ This zeroes every member's and gang's lifetime points. "
                "Run `/reset-all confirm:True` to go ahead.",
                ephemeral=True,
            )
            return
        await interaction.response.defer(ephemeral=True)
        logger.warning(
            "Full points wipe requested by %s (%s)",
            interaction.user.display_name, interaction.user.id,
        )
        summary = await run_db(reset_all, self.bot.engine, str(interaction.guild_id))
        await interaction.followup.send(
            f"✅ All points wiped: {summary.members_reset} members, "
            f"{summary.groups_reset} gangs.",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /syncgangs
    # -------------------------------------------------------------------
    @app_commands.command(name="syncgangs", description="Re-sync every member's gang from roles.")
    @is_admin()
    async def sync_gangs(self, interaction: discord.Interaction) -> None:
        if interaction.guild is None:
            await interaction.response.send_message(
                "❌ Run this inside the server.", ephemeral=True,
            )
            return
        await interaction.response.defer(ephemeral=True)
        counts = await run_db(
            sync_group_roster,
            self.bot.engine,
            self.bot.cfg,
            str(interaction.guild_id),
            roster_from_members(interaction.guild.members),
        )
        await interaction.followup.send(
            f"✅ Gang sync: {counts['registered']} registered, {counts['moved']} moved, "
            f"{counts['unchanged']} unchanged, {counts['skipped']} without a gang role.",
            ephemeral=True,
        )


async def setup(bot: GangLedgerBot) -> None:
    await bot.add_cog(Admin(bot))

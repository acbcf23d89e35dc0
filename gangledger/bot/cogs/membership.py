"""
gangledger.bot.cogs.membership — Gang role sync
================================================

A member changes gang by receiving a gang role.  ``on_member_update``
compares the role sets and, when a configured gang role was added, moves
the member into that gang (creating them on first sight).  Requires the
GUILD_MEMBERS privileged intent.

:func:`roster_from_members` turns the guild's member cache into roster
entries for the bulk sync (``/syncgangs`` and the optional startup pass).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from gangledger.database.engine import run_db
from gangledger.engine.events import RosterEntry
from gangledger.services.membership_service import sync_member_roles

if TYPE_CHECKING:
    from gangledger.bot.core import GangLedgerBot

logger = logging.getLogger(__name__)


def roster_from_members(members: Iterable[discord.Member]) -> list[RosterEntry]:
    """Roster entries for every human member."""
    return [
        RosterEntry(
            member_id=str(m.id),
            display_name=m.display_name,
            role_ids=tuple(str(r.id) for r in m.roles),
        )
        for m in members
        if not m.bot
    ]


class Membership(commands.Cog, name="Membership"):
    """Keeps a member's current gang in step with their roles."""

    def __init__(self, bot: GangLedgerBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        if after.bot or before.roles == after.roles:
            return
        try:
            member = await run_db(
                sync_member_roles,
                self.bot.engine,
                self.bot.cfg,
                guild_id=str(after.guild.id),
                member_id=str(after.id),
                display_name=after.display_name,
                before_roles=[r.id for r in before.roles],
                after_roles=[r.id for r in after.roles],
            )
            if member is not None:
                logger.info(
                    "Role sync: %s (ID: %d) now in gang %s",
                    after.display_name, after.id, member.current_group_id,
                )
        except Exception:
            logger.exception(
                "Error syncing gang role for %s", after.id,
                extra={"event_type": "member_update", "user_id": after.id},
            )


async def setup(bot: GangLedgerBot) -> None:
    await bot.add_cog(Membership(bot))

"""
gangledger.bot.cogs.activity — Message activity points
=======================================================

Listens for ``on_message``, resolves the channel to a gang through the
config, and hands the message to
:func:`gangledger.services.activity_service.track_message` on a worker
thread.  Messages outside gang channels never reach the store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from gangledger.database.engine import run_db
from gangledger.engine.events import MessageObserved
from gangledger.services.activity_service import track_message

if TYPE_CHECKING:
    from gangledger.bot.core import GangLedgerBot

logger = logging.getLogger(__name__)


class Activity(commands.Cog, name="Activity"):
    """Awards activity points for messages in gang channels."""

    def __init__(self, bot: GangLedgerBot) -> None:
        self.bot = bot

    def _build_event(self, message: discord.Message) -> MessageObserved | None:
        group = self.bot.cfg.group_for_channel(message.channel.id)
        if group is None:
            return None
        return MessageObserved(
            guild_id=str(message.guild.id),
            channel_id=str(message.channel.id),
            member_id=str(message.author.id),
            display_name=message.author.display_name,
            content=message.content,
            group_id=group.group_id,
            group_name=group.name,
            timestamp=message.created_at,
        )

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        try:
            await self._handle_message(message)
        except Exception:
            logger.exception(
                "Error processing message %s from user %s",
                message.id, message.author.id,
                extra={"event_type": "message", "user_id": message.author.id},
            )

    async def _handle_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return

        event = self._build_event(message)
        if event is None:
            return

        cfg = self.bot.cfg
        await run_db(
            track_message,
            self.bot.engine,
            event,
            categories=cfg.member_categories,
            rules=cfg.activity,
            activity_category=cfg.activity_category,
        )


async def setup(bot: GangLedgerBot) -> None:
    await bot.add_cog(Activity(bot))

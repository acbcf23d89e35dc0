"""
gangledger.bot.cogs.tasks — Periodic Background Tasks
======================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Weekly rollover** — checked every 15 minutes; resets weekly counters
  once the configured weekday/hour (UTC) has passed and the week has not
  been reset yet, then posts a notice.

The due-check reads the last reset time from the database, so restarts
never skip or repeat a week.  Jobs run via ``run_db()`` to avoid blocking
the event loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from gangledger.database.engine import run_db
from gangledger.services.rollover_service import run_scheduled_rollover

if TYPE_CHECKING:
    from gangledger.bot.core import GangLedgerBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: GangLedgerBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.rollover_loop.start()

    async def cog_unload(self) -> None:
        self.rollover_loop.cancel()

    @tasks.loop(minutes=15)
    async def rollover_loop(self):
        """Run the weekly reset when it is due."""
        cfg = self.bot.cfg
        try:
            summary = await run_db(
                run_scheduled_rollover,
                self.bot.engine,
                cfg.guild_id,
                weekday=cfg.weekly_reset_weekday,
                hour=cfg.weekly_reset_hour,
            )
        except Exception:
            logger.exception("Weekly rollover failed", extra={"task": "rollover"})
            return

        if summary is None:
            return
        logger.info(
            "Rollover task complete: %d members, %d gangs",
            summary.members_reset, summary.groups_reset,
        )
        await self._announce_rollover()

    @rollover_loop.before_loop
    async def _wait_rollover(self):
        await self.bot.wait_until_ready()

    async def _announce_rollover(self) -> None:
        try:
            channel = await self.bot.resolve_announce_channel()
            if channel is not None:
                await channel.send(
                    "Weekly points have been reset! Starting a new week of competition. 🏆"
                )
        except Exception:
            logger.exception("Rollover announcement failed", extra={"task": "rollover"})


async def setup(bot: GangLedgerBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))

"""
gangledger.bot.core — Bot Instance & Cog Loader
================================================

:class:`GangLedgerBot` is a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``)
   so every Cog reaches them via ``self.bot.cfg`` / ``self.bot.engine``.
2. Loads every Cog listed in :data:`EXTENSIONS`.
3. Syncs the slash-command tree on startup (guild-scoped when
   ``DEV_GUILD_ID`` is set, global otherwise).
4. Makes the ``groups`` table match ``config.yaml`` (seed, then orphan
   cleanup) before any message is scored, and, with
   ``sync_roster_on_startup``, re-derives every member's gang from roles.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from gangledger.bot.cogs.membership import roster_from_members
from gangledger.config import LedgerConfig
from gangledger.database.engine import run_db
from gangledger.database.seed import cleanup_orphan_groups, seed_groups
from gangledger.services.aggregation_service import refresh_all_groups
from gangledger.services.membership_service import sync_group_roster

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "gangledger.bot.cogs.activity",
    "gangledger.bot.cogs.membership",
    "gangledger.bot.cogs.leaderboard",
    "gangledger.bot.cogs.admin",
    "gangledger.bot.cogs.tasks",
]


class GangLedgerBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`LedgerConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: LedgerConfig, engine: Engine) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: length/filler checks
        intents.members = True            # Privileged: role changes
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} gang points",
        )
        self.cfg = cfg
        self.engine = engine

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load Cog extensions; one broken Cog does not stop the others."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        await self._sync_groups()

    async def _sync_groups(self) -> None:
        """Seed configured gangs, drop orphans, and rebuild gang caches."""
        try:
            created = await run_db(seed_groups, self.engine, self.cfg)
            result = await run_db(cleanup_orphan_groups, self.engine, self.cfg)
            refreshed = await run_db(refresh_all_groups, self.engine, self.cfg.guild_id)
            logger.info(
                "Gang sync: %d created, %d removed, %d members moved, %d refreshed",
                created, result["groups_removed"], result["members_moved"], refreshed,
            )
        except Exception:
            logger.exception("Gang sync failed", extra={"task": "gang_sync"})
            return

        if self.cfg.sync_roster_on_startup:
            await self._sync_roster()

    async def _sync_roster(self) -> None:
        """Match stored gangs to the roles every cached member holds."""
        guild = self.get_guild(int(self.cfg.guild_id))
        if guild is None:
            logger.warning("Roster sync skipped: guild %s not in cache", self.cfg.guild_id)
            return
        try:
            await run_db(
                sync_group_roster,
                self.engine,
                self.cfg,
                self.cfg.guild_id,
                roster_from_members(guild.members),
            )
        except Exception:
            logger.exception("Roster sync failed", extra={"task": "roster_sync"})

    async def resolve_announce_channel(self) -> discord.abc.Messageable | None:
        """Configured announcement channel, else the guild's system channel."""
        if self.cfg.announce_channel_id:
            channel = self.get_channel(int(self.cfg.announce_channel_id))
            if channel is not None:
                return channel
        guild = self.get_guild(int(self.cfg.guild_id))
        return guild.system_channel if guild else None

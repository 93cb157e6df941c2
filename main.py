# main.py
from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

import discord
from discord.ext import commands

from config import BotConfig, load_config
from db.mysql_store import MySqlStore
from db.pool import DbPool
from db.store import MemoryStore, RowStore

from services.bracket_service import BracketService
from services.discord_sink import DiscordEventSink
from services.notify_service import LoggingSink, Notifier

from renderers.embeds import Embeds
from renderers.bracket_view import BracketView
from renderers.leaderboard_view import LeaderboardView

from cogs.brackets_cog import setup as setup_brackets_cog


async def open_store(cfg: BotConfig) -> RowStore:
    if cfg.store_backend == "mysql":
        db = DbPool(cfg.mysql)
        await db.open()
        logging.info("Using MySQL store at %s:%s/%s", cfg.mysql.host, cfg.mysql.port, cfg.mysql.database)
        return MySqlStore(db)
    logging.warning("Using in-memory store; brackets are lost on restart")
    return MemoryStore()


class BracketBot(commands.Bot):
    def __init__(self, cfg: BotConfig) -> None:
        self.cfg = cfg

        intents = discord.Intents.default()
        super().__init__(
            command_prefix=self.cfg.command_prefix,
            intents=intents,
            allowed_mentions=discord.AllowedMentions.none(),
        )

        self.store: Optional[RowStore] = None
        self.notifier: Optional[Notifier] = None

    async def setup_hook(self) -> None:
        logging.info("Starting setup_hook...")

        # --- Storage ---
        self.store = await open_store(self.cfg)

        # --- Renderers ---
        embeds = Embeds()
        bracket_view = BracketView()
        leaderboard_view = LeaderboardView()

        # --- Events ---
        self.notifier = Notifier(LoggingSink(logging.DEBUG))
        if self.cfg.default_announce_channel_id:
            self.notifier.add_sink(
                DiscordEventSink(
                    self,
                    channel_id=self.cfg.default_announce_channel_id,
                    embeds=embeds,
                    events=self.cfg.announce_events,
                )
            )

        # --- Services ---
        bracket_service = BracketService(
            self.store,
            notifier=self.notifier,
            default_seeding=self.cfg.default_seeding,
        )

        # --- Cogs ---
        await setup_brackets_cog(
            self,
            bracket_service=bracket_service,
            embeds=embeds,
            bracket_view=bracket_view,
            leaderboard_view=leaderboard_view,
            default_seeding=self.cfg.default_seeding,
        )

        # --- Slash sync ---
        if self.cfg.dev_guild_id:
            guild = discord.Object(id=self.cfg.dev_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logging.info("Slash commands synced to DEV guild %s", self.cfg.dev_guild_id)
        else:
            await self.tree.sync()
            logging.info("Slash commands synced globally")

        logging.info("setup_hook complete.")

    async def close(self) -> None:
        try:
            if self.notifier:
                await self.notifier.drain()
            await super().close()
        finally:
            if self.store:
                await self.store.close()
                self.store = None


async def _run_bot() -> None:
    cfg = load_config()

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not cfg.token:
        raise RuntimeError("Missing DISCORD_TOKEN environment variable.")

    bot = BracketBot(cfg)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _request_stop(*_args) -> None:
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop)
        except NotImplementedError:
            pass

    async with bot:
        runner = asyncio.create_task(bot.start(cfg.token))
        stopper = asyncio.create_task(stop_event.wait())
        done, _ = await asyncio.wait({runner, stopper}, return_when=asyncio.FIRST_COMPLETED)
        stopper.cancel()
        if runner in done:
            runner.result()  # surface login / connection errors
        else:
            logging.info("Stop requested, shutting down")
            await bot.close()
            await runner


def main() -> None:
    asyncio.run(_run_bot())


if __name__ == "__main__":
    main()

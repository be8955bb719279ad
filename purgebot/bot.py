"""
Purge bot entry point.
discord.py 2.x client with slash commands, asyncpg persistence and a health server.
"""

import asyncio
import logging

# .env must be loaded before the config class reads the environment
from dotenv import load_dotenv

load_dotenv(encoding="utf-8")

import discord  # noqa: E402
from discord.ext import commands  # noqa: E402

from purgebot.config import BOT_NAME, BotConfig  # noqa: E402
from purgebot.core import HealthCheckServer, setup_logging  # noqa: E402
from purgebot.purge import PurgeExecutor, PurgeService, TaskScheduler  # noqa: E402
from purgebot.purge.gateway import DiscordGateway  # noqa: E402
from purgebot.shared.database import DatabaseManager, PoolConfig  # noqa: E402
from purgebot.shared.migrations import MigrationRunner  # noqa: E402
from purgebot.shared.repositories import PurgeConfigRepository  # noqa: E402

logger = logging.getLogger(BOT_NAME)


class PurgeBot(commands.Bot):
    """Discord client hosting the purge scheduler."""

    repository: PurgeConfigRepository
    scheduler: TaskScheduler
    service: PurgeService

    def __init__(self) -> None:
        intents = discord.Intents.default()
        intents.message_content = True  # wizard replies and emoji matching

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
        )

        self.initial_extensions = [
            "purgebot.cogs.purge",
        ]

        self.database = DatabaseManager(
            BotConfig.DATABASE_URL,
            PoolConfig(ssl="require" if BotConfig.DATABASE_SSL else None),
        )
        self.gateway = DiscordGateway(self)
        self.health_server = HealthCheckServer(self, port=BotConfig.HEALTH_PORT)
        self._rehydrated = False

    async def setup_hook(self) -> None:
        await self.database.connect()
        if BotConfig.AUTO_MIGRATE:
            await MigrationRunner(self.database.pool).run_pending()

        self.repository = PurgeConfigRepository(self.database.pool)
        executor = PurgeExecutor(
            self.gateway,
            self.repository,
            window_size=BotConfig.PURGE_WINDOW_SIZE,
            delete_delay=BotConfig.PURGE_DELETE_DELAY,
        )
        self.scheduler = TaskScheduler(executor)
        self.service = PurgeService(
            self.repository,
            self.scheduler,
            self.gateway,
            wizard_attempts=BotConfig.WIZARD_MAX_ATTEMPTS,
            wizard_timeout=BotConfig.WIZARD_TIMEOUT,
        )

        loaded, failed = [], []
        for extension in self.initial_extensions:
            try:
                await self.load_extension(extension)
                loaded.append(extension.split(".")[-1])
            except Exception as e:
                failed.append(f"{extension.split('.')[-1]} ({e})")
        if loaded:
            logger.info(f"Loaded cogs: {', '.join(loaded)}")
        if failed:
            logger.error(f"Failed to load: {', '.join(failed)}")

        if BotConfig.GUILD_ID:
            guild = discord.Object(id=int(BotConfig.GUILD_ID))
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info(f"Synced slash commands to guild {BotConfig.GUILD_ID}")
        else:
            await self.tree.sync()
            logger.info("Synced slash commands globally")

        await self.health_server.start()

    async def on_ready(self) -> None:
        await self.change_presence(status=BotConfig.get_status(), activity=BotConfig.get_activity())
        logger.info(f"Bot ready: {self.user} (ID: {self.user.id if self.user else '?'})")
        logger.info(f"Connected to {len(self.guilds)} guild(s) | discord.py {discord.__version__}")

        # on_ready fires again after reconnects
        if not self._rehydrated:
            self._rehydrated = True
            try:
                await self.service.on_startup()
            except Exception as e:
                self._rehydrated = False
                logger.exception(f"Rehydrating purge jobs failed: {e}")

    async def close(self) -> None:
        if hasattr(self, "scheduler"):
            await self.scheduler.shutdown()
        await self.health_server.stop()
        await self.database.disconnect()
        await super().close()


async def main() -> None:
    setup_logging()

    missing = BotConfig.validate()
    if missing:
        logger.error(f"Missing environment variables: {', '.join(missing)}")
        return

    async with PurgeBot() as bot:
        try:
            await bot.start(BotConfig.TOKEN)
        except (KeyboardInterrupt, asyncio.CancelledError):
            if not bot.is_closed():
                await bot.close()


def run() -> None:
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Bot stopped")
    except Exception as e:
        logger.error(f"Bot crashed: {e}", exc_info=e)


if __name__ == "__main__":
    run()

"""Purge bot configuration"""

import logging
import os

import discord

logger = logging.getLogger(__name__)

BOT_NAME = "purgebot"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BotConfig:
    TOKEN: str = os.getenv("DISCORD_BOT_TOKEN", "")
    GUILD_ID: str = os.getenv("DISCORD_GUILD_ID", "")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DATABASE_SSL: bool = _env_bool("DATABASE_SSL", "true")
    AUTO_MIGRATE: bool = _env_bool("AUTO_MIGRATE", "true")

    STATUS: str = os.getenv("DISCORD_STATUS", "")
    ACTIVITY_TYPE: str = os.getenv("DISCORD_ACTIVITY_TYPE", "")
    ACTIVITY_NAME: str = os.getenv("DISCORD_ACTIVITY_NAME", "")

    PURGE_WINDOW_SIZE: int = int(os.getenv("PURGE_WINDOW_SIZE", "100"))
    PURGE_DELETE_DELAY: float = float(os.getenv("PURGE_DELETE_DELAY", "0.5"))
    WIZARD_TIMEOUT: float = float(os.getenv("WIZARD_TIMEOUT", "60"))
    WIZARD_MAX_ATTEMPTS: int = int(os.getenv("WIZARD_MAX_ATTEMPTS", "3"))

    HEALTH_PORT: int = int(os.getenv("PORT", "8080"))

    @classmethod
    def get_status(cls) -> discord.Status:
        status_map = {
            "online": discord.Status.online,
            "idle": discord.Status.idle,
            "dnd": discord.Status.dnd,
            "invisible": discord.Status.invisible,
        }
        return status_map.get(cls.STATUS.lower(), discord.Status.online)

    @classmethod
    def get_activity(cls) -> discord.Activity | None:
        """Activity from DISCORD_ACTIVITY_TYPE / DISCORD_ACTIVITY_NAME (playing, listening, watching, competing)."""
        if not cls.ACTIVITY_NAME:
            return None

        activity_map = {
            "playing": discord.ActivityType.playing,
            "listening": discord.ActivityType.listening,
            "watching": discord.ActivityType.watching,
            "competing": discord.ActivityType.competing,
        }
        activity_type = activity_map.get(cls.ACTIVITY_TYPE.lower())
        if activity_type is None:
            if cls.ACTIVITY_TYPE:
                logger.warning(f"Unknown DISCORD_ACTIVITY_TYPE '{cls.ACTIVITY_TYPE}', using 'watching'")
            activity_type = discord.ActivityType.watching
        return discord.Activity(type=activity_type, name=cls.ACTIVITY_NAME)

    @classmethod
    def validate(cls) -> list[str]:
        """Names of required settings that are missing."""
        missing = []
        if not cls.TOKEN:
            missing.append("DISCORD_BOT_TOKEN")
        if not cls.DATABASE_URL:
            missing.append("DATABASE_URL")
        return missing

"""Logging setup for the bot process"""

import logging
import os

try:
    from rich.console import Console
    from rich.logging import RichHandler

    RICH_AVAILABLE = True
except ImportError:
    RICH_AVAILABLE = False

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Gateway and pool chatter drowns out purge logs at INFO
QUIET_LOGGERS = ("discord", "discord.http", "discord.gateway", "aiohttp.access", "asyncpg")


def _rich_handler() -> logging.Handler:
    # markup off: user-typed channel names end up in log lines
    handler = RichHandler(
        console=Console(width=120),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_width=120,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt=f"[{DATE_FORMAT}]"))
    return handler


def setup_logging(level_name: str | None = None) -> None:
    """Route all logs through Rich when installed; LOG_LEVEL sets the level."""
    level_name = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    if RICH_AVAILABLE:
        logging.basicConfig(level=level, handlers=[_rich_handler()], force=True)
    else:
        logging.basicConfig(level=level, format=PLAIN_FORMAT, datefmt=DATE_FORMAT, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

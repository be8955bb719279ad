"""Repository layer for the purge bot."""

from .purge_config import PurgeConfigRepository

__all__ = [
    "PurgeConfigRepository",
]

"""Shared data models for the purge bot."""

from .purge_config import MediaType, PurgeConfig, normalize_media_types

__all__ = [
    "MediaType",
    "PurgeConfig",
    "normalize_media_types",
]

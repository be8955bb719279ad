"""Data model for the purge_configs table."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MediaType(str, Enum):
    ALL = "all"
    ATTACHMENTS = "attachments"
    STICKERS = "stickers"
    GIFS = "gifs"
    EMOJIS = "emojis"


def normalize_media_types(values: Iterable[MediaType | str]) -> tuple[MediaType, ...]:
    """Coerce to MediaType members, dropping duplicates but keeping order."""
    result: list[MediaType] = []
    for value in values:
        media = MediaType(value)
        if media not in result:
            result.append(media)
    return tuple(result)


@dataclass
class PurgeConfig:
    """Per-channel purge schedule. ``channel_id`` is the natural key."""

    guild_id: int
    channel_id: int
    interval_ms: int
    media_types: tuple[MediaType, ...] = field(default=(MediaType.ALL,))
    user_id: int | None = None
    log_channel_id: int | None = None
    active: bool = True
    last_run: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {self.interval_ms}")
        self.media_types = normalize_media_types(self.media_types)
        if self.active and not self.media_types:
            raise ValueError("an active purge config needs at least one media type")

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> PurgeConfig:
        """Build from an asyncpg Record (``media_types`` is a TEXT[] column)."""
        data = dict(row)
        data.pop("id", None)
        data["media_types"] = tuple(data.get("media_types") or ())
        return cls(**data)

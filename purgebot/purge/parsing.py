"""Parsers for wizard replies (raising ValidationError with a user-facing message) and summary formatting."""

from __future__ import annotations

import re

from purgebot.shared.models.purge_config import MediaType, PurgeConfig, normalize_media_types

from .errors import ValidationError

_INTERVAL_PATTERN = re.compile(r"^(\d+)\s*([smhd])$", re.IGNORECASE)
_UNIT_MS = {
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

_CHANNEL_MENTION = re.compile(r"^<#(\d+)>$")
_USER_MENTION = re.compile(r"^<@!?(\d+)>$")
_SNOWFLAKE = re.compile(r"^\d{15,21}$")

NO_USER_SENTINEL = "none"


def parse_interval(text: str) -> int:
    """``"30s"`` -> 30000. Units: s, m, h, d."""
    match = _INTERVAL_PATTERN.match(text.strip())
    if not match:
        raise ValidationError("Interval must look like `30s`, `15m`, `2h` or `1d`.")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValidationError("Interval must be greater than zero.")
    return amount * _UNIT_MS[match.group(2).lower()]


def format_interval(interval_ms: int) -> str:
    """Largest whole unit, e.g. 7200000 -> ``"2h"``; falls back to seconds."""
    for unit in ("d", "h", "m"):
        if interval_ms % _UNIT_MS[unit] == 0:
            return f"{interval_ms // _UNIT_MS[unit]}{unit}"
    return f"{interval_ms / 1000:g}s"


def parse_media_types(text: str) -> tuple[MediaType, ...]:
    """Comma-separated subset of the media enumeration, e.g. ``"attachments, gifs"``."""
    names = [part.strip().lower() for part in text.split(",") if part.strip()]
    if not names:
        raise ValidationError("Give at least one media type.")

    valid = {media.value for media in MediaType}
    unknown = [name for name in names if name not in valid]
    if unknown:
        raise ValidationError(
            f"Unknown media type(s): {', '.join(unknown)}. "
            f"Choose from: {', '.join(sorted(valid))}."
        )
    return normalize_media_types(names)


def parse_channel_reference(text: str) -> int | str:
    """Channel id from ``<#id>`` or a raw id, otherwise the bare name without ``#``."""
    text = text.strip()
    if match := _CHANNEL_MENTION.match(text):
        return int(match.group(1))
    if _SNOWFLAKE.match(text):
        return int(text)
    name = text.lstrip("#").strip()
    if not name:
        raise ValidationError("Mention a channel like #general.")
    return name


def parse_user_reference(text: str) -> int | None:
    """``None`` for the ``none`` sentinel, else the id from ``<@id>``/``<@!id>``/raw id."""
    text = text.strip()
    if text.lower() == NO_USER_SENTINEL:
        return None
    if match := _USER_MENTION.match(text):
        return int(match.group(1))
    if _SNOWFLAKE.match(text):
        return int(text)
    raise ValidationError("Mention a user like @someone, paste their ID, or reply `none`.")


def describe_config(config: PurgeConfig) -> str:
    """One-line human summary used in acknowledgements and status listings."""
    kinds = ", ".join(media.value for media in config.media_types)
    parts = [f"<#{config.channel_id}> every **{format_interval(config.interval_ms)}**", f"media: {kinds}"]
    if config.user_id is not None:
        parts.append(f"user: <@{config.user_id}>")
    if config.log_channel_id is not None:
        parts.append(f"log: <#{config.log_channel_id}>")
    return " | ".join(parts)

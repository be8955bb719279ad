"""Message selection predicate evaluated on every purge tick."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from purgebot.shared.models.purge_config import MediaType, PurgeConfig

if TYPE_CHECKING:
    import discord

GIF_URL_PATTERN = re.compile(
    r"https?://(?:[\w-]+\.)*(?:tenor\.com|giphy\.com|gfycat\.com)/"
    r"|https?://\S+\.gif(?:$|[?#])",
    re.IGNORECASE,
)
CUSTOM_EMOJI_PATTERN = re.compile(r"<a?:\w{2,32}:\d{15,21}>")


@dataclass(frozen=True)
class MessageSnapshot:
    """The parts of a message the filter looks at."""

    id: int
    author_id: int
    attachment_count: int = 0
    sticker_count: int = 0
    embed_count: int = 0
    embed_urls: tuple[str, ...] = ()
    content: str = ""

    @classmethod
    def from_message(cls, message: discord.Message) -> MessageSnapshot:
        urls: list[str] = []
        for embed in message.embeds:
            for url in (embed.url, embed.thumbnail.url, embed.image.url, embed.video.url):
                if url:
                    urls.append(url)
        return cls(
            id=message.id,
            author_id=message.author.id,
            attachment_count=len(message.attachments),
            sticker_count=len(message.stickers),
            embed_count=len(message.embeds),
            embed_urls=tuple(urls),
            content=message.content or "",
        )


def _has_media(message: MessageSnapshot) -> bool:
    return message.attachment_count > 0 or message.embed_count > 0 or message.sticker_count > 0


def _has_gif(message: MessageSnapshot) -> bool:
    return any(GIF_URL_PATTERN.search(url) for url in message.embed_urls)


def _has_custom_emoji(message: MessageSnapshot) -> bool:
    return bool(CUSTOM_EMOJI_PATTERN.search(message.content))


_CHECKS = {
    MediaType.ATTACHMENTS: lambda m: m.attachment_count > 0,
    MediaType.STICKERS: lambda m: m.sticker_count > 0,
    MediaType.GIFS: _has_gif,
    MediaType.EMOJIS: _has_custom_emoji,
}


def matched_types(message: MessageSnapshot, config: PurgeConfig) -> list[MediaType]:
    """Requested media types this message satisfies, in the config's order.

    Empty when the author filter excludes the message. ``all`` subsumes the
    other types, so when it matches it is the only type reported.
    """
    if config.user_id is not None and message.author_id != config.user_id:
        return []
    if MediaType.ALL in config.media_types:
        return [MediaType.ALL] if _has_media(message) else []
    return [media for media in config.media_types if _CHECKS[media](message)]


def matches(message: MessageSnapshot, config: PurgeConfig) -> bool:
    """True if the message should be deleted under ``config``."""
    if config.user_id is not None and message.author_id != config.user_id:
        return False
    if MediaType.ALL in config.media_types:
        return _has_media(message)
    return any(_CHECKS[media](message) for media in config.media_types)

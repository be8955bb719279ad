"""Discord adapters for the purge core.

``DiscordGateway`` resolves channels and members, reads and deletes messages and
sends notifications. ``DiscordDialogue`` carries a setup wizard's prompts and
replies for one caller in one channel.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import discord
from discord.ext import commands

from .errors import ChannelUnavailable, ValidationError
from .filter import MessageSnapshot
from .parsing import parse_channel_reference

logger = logging.getLogger(__name__)

PurgeableChannel = discord.TextChannel | discord.Thread | discord.VoiceChannel


class MessagingGateway(Protocol):
    async def resolve_channel(self, channel_id: int) -> Any | None: ...

    async def fetch_recent(self, channel: Any, limit: int) -> list[MessageSnapshot]: ...

    async def delete_message(self, channel: Any, message_id: int) -> None: ...

    async def send_notification(self, channel_id: int, text: str) -> None: ...

    async def resolve_text_channel(self, guild_id: int, reference: str) -> int: ...

    async def resolve_member(self, guild_id: int, user_id: int) -> int | None: ...


class DialogueTransport(Protocol):
    async def send(self, text: str) -> None: ...

    async def receive(self, timeout: float) -> str: ...


class DiscordGateway:
    """MessagingGateway backed by a discord.py bot."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def resolve_channel(self, channel_id: int) -> PurgeableChannel | None:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden):
                return None
            except discord.HTTPException as e:
                logger.warning(f"Fetching channel {channel_id} failed: {e}")
                return None
        if not isinstance(channel, PurgeableChannel):
            return None
        return channel

    async def fetch_recent(self, channel: PurgeableChannel, limit: int) -> list[MessageSnapshot]:
        return [MessageSnapshot.from_message(m) async for m in channel.history(limit=limit)]

    async def delete_message(self, channel: PurgeableChannel, message_id: int) -> None:
        await channel.get_partial_message(message_id).delete()

    async def send_notification(self, channel_id: int, text: str) -> None:
        channel = await self.resolve_channel(channel_id)
        if channel is None:
            raise ChannelUnavailable(channel_id)
        await channel.send(text)

    async def resolve_text_channel(self, guild_id: int, reference: str) -> int:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise ValidationError("This server is not available to the bot.")

        ref = parse_channel_reference(reference)
        if isinstance(ref, int):
            channel = guild.get_channel(ref)
        else:
            channel = discord.utils.get(guild.text_channels, name=ref)

        if not isinstance(channel, discord.TextChannel):
            raise ValidationError(f"`{reference}` is not a text channel in this server.")

        perms = channel.permissions_for(guild.me)
        if not (perms.read_message_history and perms.manage_messages):
            raise ValidationError(
                f"I need Read Message History and Manage Messages in {channel.mention}."
            )
        return channel.id

    async def resolve_member(self, guild_id: int, user_id: int) -> int | None:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return None
        if member := guild.get_member(user_id):
            return member.id
        try:
            return (await guild.fetch_member(user_id)).id
        except (discord.NotFound, discord.HTTPException):
            return None


class DiscordDialogue:
    """Prompts sent to a channel; only the caller's replies in that channel are read."""

    def __init__(self, bot: commands.Bot, channel: discord.abc.Messageable, caller_id: int) -> None:
        self.bot = bot
        self.channel = channel
        self.caller_id = caller_id
        self._channel_id = getattr(channel, "id", None)

    def _is_reply(self, message: discord.Message) -> bool:
        return message.author.id == self.caller_id and message.channel.id == self._channel_id

    async def send(self, text: str) -> None:
        await self.channel.send(text)

    async def receive(self, timeout: float) -> str:
        """Next reply from the caller. Raises asyncio.TimeoutError when none arrives."""
        message = await self.bot.wait_for("message", check=self._is_reply, timeout=timeout)
        return message.content

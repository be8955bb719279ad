"""Purge scheduling slash commands."""

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from purgebot.purge import Done, PersistenceFailure
from purgebot.purge.gateway import DiscordDialogue
from purgebot.purge.parsing import describe_config

if TYPE_CHECKING:
    from purgebot.bot import PurgeBot
    from purgebot.purge import PurgeService

logger = logging.getLogger(__name__)

PURGE_COLOR = discord.Color.dark_red()


class PurgeCog(commands.Cog):
    """The Purge: scheduled media cleanup per channel"""

    def __init__(self, bot: "PurgeBot"):
        self.bot = bot
        self._active_wizards: set[int] = set()

    @property
    def service(self) -> "PurgeService":
        return self.bot.service

    @staticmethod
    def _target(interaction: discord.Interaction, channel: discord.TextChannel | None) -> int | None:
        if channel is not None:
            return channel.id
        return interaction.channel_id

    # ==================== Commands ====================

    @app_commands.command(name="purge-setup", description="💀 Configure a recurring purge for a channel")
    @app_commands.describe(log_channel="Where to post purge summaries (optional)")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.checks.has_permissions(manage_messages=True)
    async def purge_setup(
        self, interaction: discord.Interaction, log_channel: discord.TextChannel | None = None
    ) -> None:
        if not interaction.guild or interaction.channel is None:
            await interaction.response.send_message("This command only works in a server", ephemeral=True)
            return
        if interaction.user.id in self._active_wizards:
            await interaction.response.send_message(
                "You already have a purge setup in progress. Reply `cancel` there first.", ephemeral=True
            )
            return

        await interaction.response.send_message(
            "💀 **The Purge setup**: answer the questions below in this channel.", ephemeral=True
        )

        self._active_wizards.add(interaction.user.id)
        try:
            transport = DiscordDialogue(self.bot, interaction.channel, interaction.user.id)  # type: ignore[arg-type]
            outcome = await self.service.configure(
                interaction.guild.id,
                interaction.channel.id,
                interaction.user.id,
                transport,
                log_channel_id=log_channel.id if log_channel else None,
            )
            if isinstance(outcome, Done):
                logger.info(
                    f"Purge setup | guild: {interaction.guild.name} | by: {interaction.user.name} | "
                    f"{describe_config(outcome.config)}"
                )
        except PersistenceFailure as e:
            logger.error(f"Purge setup in {interaction.guild.id} not saved: {e}")
        except discord.HTTPException as e:
            logger.warning(f"Purge setup dialogue broke off: {e}")
        finally:
            self._active_wizards.discard(interaction.user.id)

    @app_commands.command(name="purge-stop", description="⏹️ Stop the recurring purge for a channel")
    @app_commands.describe(channel="Channel to stop (defaults to this one)")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.checks.has_permissions(manage_messages=True)
    async def purge_stop(
        self, interaction: discord.Interaction, channel: discord.TextChannel | None = None
    ) -> None:
        channel_id = self._target(interaction, channel)
        if channel_id is None:
            await interaction.response.send_message("No channel to stop", ephemeral=True)
            return

        try:
            result = await self.service.stop(channel_id)
        except PersistenceFailure as e:
            logger.error(f"purge-stop failed: {e}")
            await interaction.response.send_message("⚠️ Could not save the change, purge still running", ephemeral=True)
            return

        if result.was_active:
            await interaction.response.send_message(f"⏹️ Purge stopped for <#{channel_id}>. Settings are kept.")
        else:
            await interaction.response.send_message(f"<#{channel_id}> has no active purge", ephemeral=True)

    @app_commands.command(name="purge-resume", description="▶️ Restart a stopped purge with its saved settings")
    @app_commands.describe(channel="Channel to resume (defaults to this one)")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.checks.has_permissions(manage_messages=True)
    async def purge_resume(
        self, interaction: discord.Interaction, channel: discord.TextChannel | None = None
    ) -> None:
        channel_id = self._target(interaction, channel)
        if channel_id is None:
            await interaction.response.send_message("No channel to resume", ephemeral=True)
            return

        try:
            config = await self.service.resume(channel_id)
        except PersistenceFailure as e:
            logger.error(f"purge-resume failed: {e}")
            await interaction.response.send_message("⚠️ Could not save the change", ephemeral=True)
            return

        if config is None:
            await interaction.response.send_message(
                f"<#{channel_id}> was never configured, use `/purge-setup`", ephemeral=True
            )
            return
        await interaction.response.send_message(f"▶️ Purge resumed: {describe_config(config)}")

    @app_commands.command(name="purge-status", description="📋 List active purges in this server")
    @app_commands.guild_only()
    async def purge_status(self, interaction: discord.Interaction) -> None:
        if not interaction.guild:
            await interaction.response.send_message("This command only works in a server", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        configs = await self.service.status(interaction.guild.id)

        embed = discord.Embed(title="💀 Active purges", color=PURGE_COLOR)
        if not configs:
            embed.description = "No active purges. Use `/purge-setup` to create one."
        for config in configs[:25]:
            last_run = discord.utils.format_dt(config.last_run, "R") if config.last_run else "never"
            running = "" if self.bot.scheduler.is_running(config.channel_id) else " ⚠️ not scheduled"
            embed.add_field(
                name=f"#{getattr(interaction.guild.get_channel(config.channel_id), 'name', config.channel_id)}",
                value=f"{describe_config(config)}\nLast run: {last_run}{running}",
                inline=False,
            )
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(name="purge-now", description="🧹 Purge configured media from a channel right now")
    @app_commands.describe(channel="Channel to purge (defaults to this one)")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.checks.has_permissions(manage_messages=True)
    async def purge_now(
        self, interaction: discord.Interaction, channel: discord.TextChannel | None = None
    ) -> None:
        channel_id = self._target(interaction, channel)
        if channel_id is None:
            await interaction.response.send_message("No channel to purge", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        result = await self.service.purge_now(channel_id)
        if result is None:
            await interaction.followup.send(
                f"<#{channel_id}> has no purge settings, use `/purge-setup` first", ephemeral=True
            )
            return
        if result.error is not None and result.deleted_count == 0:
            await interaction.followup.send(f"⚠️ Purge failed: {result.error}", ephemeral=True)
            return

        text = f"🧹 Deleted {result.deleted_count} message(s) from <#{channel_id}>"
        if result.failed_count:
            text += f" ({result.failed_count} could not be deleted)"
        await interaction.followup.send(text, ephemeral=True)

    # ==================== Errors ====================

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.MissingPermissions):
            message = "You need the Manage Messages permission for this"
        else:
            logger.error(f"Command error: {error}", exc_info=error)
            message = "Something went wrong running this command"

        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(PurgeCog(bot))  # type: ignore[arg-type]

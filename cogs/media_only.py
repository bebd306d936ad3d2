# cogs/media_only.py
import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

import permissions
from media import MediaOnlyStore, message_has_media
from modlog import action_embed, modlog

LOG = logging.getLogger(__name__)

NOTICE_SECONDS = 8
THREAD_NAME_MAX = 100


def _thread_name(message: discord.Message) -> str:
    text = " ".join((message.content or "").split())
    base = text if text and not text.startswith("http") else f"{message.author.display_name}'s post"
    return base[:THREAD_NAME_MAX]


class MediaOnly(commands.Cog):
    """Channels where only images, clips and media links may be posted."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        store: Optional[MediaOnlyStore] = getattr(bot, "media_only_store", None)
        if store is None:
            store = MediaOnlyStore()
            bot.media_only_store = store  # type: ignore[attr-defined]
        self.store = store

    # ── EVENTS ────────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot:
            return
        if message.channel.id not in self.store:
            return
        if not isinstance(message.channel, discord.TextChannel):
            return

        has_media = message_has_media(
            message.content,
            [(a.filename, a.content_type) for a in message.attachments],
            [e.type for e in message.embeds],
        )

        if has_media:
            try:
                await message.create_thread(name=_thread_name(message), reason="Media discussion")
            except discord.HTTPException:
                LOG.exception("Failed to open discussion thread in #%s", message.channel.name)
            return

        if isinstance(message.author, discord.Member) and permissions.is_mod_member(message.author):
            return

        try:
            await message.delete()
        except discord.Forbidden:
            LOG.warning("Missing permission to delete text-only message in #%s", message.channel.name)
            return
        except discord.NotFound:
            return
        except discord.HTTPException:
            LOG.exception("Failed to delete text-only message in #%s", message.channel.name)
            return

        try:
            await message.channel.send(
                f"{message.author.mention} this channel is for media only. "
                "Reply in the thread under a post to chat about it.",
                delete_after=NOTICE_SECONDS,
            )
        except discord.HTTPException:
            LOG.exception("Failed to send media-only notice in #%s", message.channel.name)

        await modlog(
            self.bot,
            message.guild,
            action_embed(
                message.author,
                self.bot.user,  # type: ignore[arg-type]
                "Removed text-only message",
                f"#{message.channel.name}: {message.content or '*no content*'}",
                colour=0xFEE75C,
            ),
        )

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        if self.store.remove(channel.id):
            LOG.info("Media-only channel %s was deleted", channel.id)

    # ── SLASH COMMANDS ────────────────────────────────────────────

    @app_commands.command(name="media-only", description="Only allow media posts in a channel.")
    @app_commands.describe(channel="Text channel to restrict to media")
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    async def media_only(self, interaction: discord.Interaction, channel: discord.TextChannel) -> None:
        if not self.store.add(channel.guild.id, channel.id, channel.name):
            await interaction.response.send_message(
                f"{channel.mention} is already a media-only channel.", ephemeral=True
            )
            return

        LOG.info("Media-only enabled for #%s (%s) in guild %s", channel.name, channel.id, channel.guild.id)
        await interaction.response.send_message(
            f"✅ {channel.mention} is now media-only. Text-only messages will be removed "
            "and every media post gets a discussion thread.",
            ephemeral=True,
        )

    @app_commands.command(name="manage-media", description="List or remove media-only channels.")
    @app_commands.choices(
        action=[
            app_commands.Choice(name="List media-only channels", value="list"),
            app_commands.Choice(name="Remove media-only from channel", value="remove"),
        ]
    )
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    async def manage_media(
        self,
        interaction: discord.Interaction,
        action: app_commands.Choice[str],
        channel: Optional[discord.TextChannel] = None,
    ) -> None:
        guild_id = interaction.guild_id or 0

        if action.value == "list":
            channels = self.store.for_guild(guild_id)
            if not channels:
                await interaction.response.send_message(
                    "No media-only channels are configured in this server.", ephemeral=True
                )
                return
            lines = [f"• **{c.channel_name}** (<#{c.channel_id}>)" for c in channels]
            await interaction.response.send_message(
                "**Media-only channels:**\n" + "\n".join(lines), ephemeral=True
            )
            return

        if channel is None:
            await interaction.response.send_message(
                "Please specify a channel to remove from media-only.", ephemeral=True
            )
            return

        if channel.id not in self.store:
            await interaction.response.send_message(
                f"{channel.mention} is not a media-only channel.", ephemeral=True
            )
            return

        self.store.remove(channel.id)
        LOG.info("Media-only disabled for #%s (%s) in guild %s", channel.name, channel.id, guild_id)
        await interaction.response.send_message(
            f"✅ {channel.mention} is no longer media-only.", ephemeral=True
        )


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(MediaOnly(bot))

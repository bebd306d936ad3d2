"""
Moderation cog

Key points:
- Warnings live in bot.warning_store (in memory, lost on restart).
- Every action is echoed to the per-guild log channel picked with /logs.
- /manage-msg only looks in the channel it is used in.
"""

import logging
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

import permissions
from modlog import LogChannelStore, WarningStore, action_embed, modlog, parse_warning_numbers

# ── CONFIG ─────────────────────────────────────────────────────────

DEFAULT_MSG_REASON = "Please keep discussions relevant to the channel topic"

# How many warnings /user-warnings shows
WARNINGS_SHOWN = 10

# Limit for how much message content we log in embeds
LOG_MESSAGE_CONTENT_MAX = 1900

WARN_COLOUR = 0xFFA500


def _shorten(text: Optional[str], limit: int = 1024) -> str:
    if text is None:
        return ""
    s = str(text)
    if len(s) <= limit:
        return s
    return s[: limit - 3] + "..."


class Moderation(commands.Cog):
    """Warnings, message removal and the mod-log channel."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        if getattr(bot, "warning_store", None) is None:
            bot.warning_store = WarningStore()
        if getattr(bot, "log_channels", None) is None:
            bot.log_channels = LogChannelStore()

    @property
    def warnings(self) -> WarningStore:
        return self.bot.warning_store

    # ── WARN SLASH COMMANDS ────────────────────────────────────────
    @app_commands.command(
        name="warn",
        description="Issue a warning to a user.",
    )
    @app_commands.guild_only()
    @permissions.mod_slash_only()
    @app_commands.describe(
        user="User to warn.",
        reason="Reason for the warning.",
    )
    async def warn_cmd(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
        reason: str,
    ):
        if user.bot:
            await interaction.response.send_message(
                "You can’t warn bots.",
                ephemeral=True,
            )
            return

        reason = reason.strip() or "No reason provided."
        guild = interaction.guild
        record = self.warnings.add(guild.id, user.id, reason, interaction.user.id)  # type: ignore[union-attr]
        total = len(self.warnings.list(guild.id, user.id))  # type: ignore[union-attr]

        # DM the user (best effort)
        dm = discord.Embed(
            title="⚠️ Warning Issued",
            description=f"You have been warned in **{guild.name}**.",  # type: ignore[union-attr]
            color=WARN_COLOUR,
            timestamp=record.created_at,
        )
        dm.add_field(name="Reason", value=_shorten(reason), inline=False)
        dm.add_field(name="Warning Count", value=str(total), inline=True)
        dm.add_field(name="Moderator", value=str(interaction.user), inline=True)
        try:
            await user.send(embed=dm)
        except discord.HTTPException:
            logging.warning("Moderation: could not DM warning to %s", user.id)

        await interaction.response.send_message(
            f"⚠️ {user.mention} has been warned.\n"
            f"**Reason:** {reason}\n"
            f"**Total warnings:** {total}",
            ephemeral=True,
        )

        await modlog(
            self.bot,
            guild,  # type: ignore[arg-type]
            action_embed(user, interaction.user, f"Warn #{record.number}", reason, colour=WARN_COLOUR),
        )

    @app_commands.command(
        name="user-warnings",
        description="View warnings for a specific user.",
    )
    @app_commands.guild_only()
    @permissions.mod_slash_only()
    @app_commands.describe(
        user="The user to check warnings for.",
    )
    async def user_warnings_cmd(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
    ):
        warns = self.warnings.list(interaction.guild_id, user.id)  # type: ignore[arg-type]

        if not warns:
            await interaction.response.send_message(
                f"{user.mention} has no warnings.",
                ephemeral=True,
            )
            return

        embed = discord.Embed(
            title=f"⚠️ Warnings for {user}",
            description=f"Total warnings: **{len(warns)}**",
            color=discord.Color.orange(),
            timestamp=discord.utils.utcnow(),
        )
        for w in warns[-WARNINGS_SHOWN:]:
            embed.add_field(
                name=f"Warning #{w.number}",
                value=(
                    f"**Reason:** {_shorten(w.reason, 900)}\n"
                    f"**Moderator:** <@{w.moderator_id}>\n"
                    f"**Date:** {discord.utils.format_dt(w.created_at, style='f')}"
                ),
                inline=False,
            )
        if len(warns) > WARNINGS_SHOWN:
            embed.set_footer(text=f"Showing last {WARNINGS_SHOWN} warnings")

        await interaction.response.send_message(
            embed=embed,
            ephemeral=True,
        )

    @app_commands.command(
        name="clear-warnings",
        description="Clear specific warnings for a user.",
    )
    @app_commands.guild_only()
    @permissions.mod_slash_only()
    @app_commands.describe(
        user="The user to clear warnings for.",
        warning_numbers='Warning numbers to clear (e.g. "1,3,5" or "all").',
    )
    async def clear_warnings_cmd(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
        warning_numbers: str,
    ):
        guild_id: int = interaction.guild_id  # type: ignore[assignment]
        warns = self.warnings.list(guild_id, user.id)
        if not warns:
            await interaction.response.send_message(
                f"{user.mention} has no warnings to clear.",
                ephemeral=True,
            )
            return

        try:
            numbers = parse_warning_numbers(warning_numbers)
        except ValueError:
            await interaction.response.send_message(
                '❌ Invalid warning numbers format. Use comma-separated numbers (e.g. "1,3,5") or "all".',
                ephemeral=True,
            )
            return

        if numbers is None:
            count = self.warnings.clear(guild_id, user.id)
            await interaction.response.send_message(
                f"✅ All warnings cleared for {user.mention}.",
                ephemeral=True,
            )
            await modlog(
                self.bot,
                interaction.guild,  # type: ignore[arg-type]
                action_embed(user, interaction.user, "Cleared warns", f"{count} warn(s) cleared.", colour=0x57F287),
            )
            return

        removed = self.warnings.remove(guild_id, user.id, numbers)
        if not removed:
            available = ", ".join(str(w.number) for w in warns)
            await interaction.response.send_message(
                f"❌ No valid warning numbers found. Available warnings: {available}",
                ephemeral=True,
            )
            return

        remaining = len(self.warnings.list(guild_id, user.id))
        await interaction.response.send_message(
            f"✅ Cleared {len(removed)} warning(s) for {user.mention}. Remaining warnings: {remaining}",
            ephemeral=True,
        )
        await modlog(
            self.bot,
            interaction.guild,  # type: ignore[arg-type]
            action_embed(
                user,
                interaction.user,
                "Cleared warns",
                "Warning numbers: " + ", ".join(f"#{n}" for n in removed),
                colour=0x57F287,
            ),
        )

    # ── MESSAGE REMOVAL ────────────────────────────────────────────
    @app_commands.command(
        name="manage-msg",
        description="Delete a message in this channel and notify its author.",
    )
    @app_commands.guild_only()
    @permissions.mod_slash_only()
    @app_commands.describe(
        message_id="ID of the message to delete.",
        reason="Reason shown to the author.",
    )
    async def manage_msg_cmd(
        self,
        interaction: discord.Interaction,
        message_id: str,
        reason: Optional[str] = None,
    ):
        channel = interaction.channel
        if not isinstance(channel, (discord.TextChannel, discord.Thread, discord.VoiceChannel)):
            await interaction.response.send_message(
                "This command must be used in a text channel.",
                ephemeral=True,
            )
            return

        reason = (reason or "").strip() or DEFAULT_MSG_REASON
        try:
            message = await channel.fetch_message(int(message_id))
        except (ValueError, discord.NotFound):
            await interaction.response.send_message(
                "❌ Message not found in this channel.",
                ephemeral=True,
            )
            return
        except discord.HTTPException:
            logging.exception("Moderation: failed to fetch message %s", message_id)
            await interaction.response.send_message(
                "❌ Couldn’t look that message up. Please try again.",
                ephemeral=True,
            )
            return

        author = message.author
        content = message.content or "*no content*"
        try:
            await message.delete()
        except discord.Forbidden:
            await interaction.response.send_message(
                "I don’t have permission to delete messages here.",
                ephemeral=True,
            )
            return
        except discord.HTTPException:
            logging.exception("Moderation: failed to delete message %s", message_id)
            await interaction.response.send_message(
                "❌ Failed to delete message.",
                ephemeral=True,
            )
            return

        notice = discord.Embed(
            title="Message Removed",
            description=f"Your message in **{interaction.guild.name}** was deleted by a moderator.",  # type: ignore[union-attr]
            color=0xFF6B6B,
            timestamp=discord.utils.utcnow(),
        )
        notice.add_field(name="Channel", value=channel.mention, inline=True)
        notice.add_field(name="Reason", value=_shorten(reason), inline=True)
        try:
            await author.send(embed=notice)
        except discord.HTTPException:
            logging.warning("Moderation: could not DM removal notice to %s", author.id)

        await interaction.response.send_message(
            f"✅ Message deleted and user has been notified.\n**Reason:** {reason}",
            ephemeral=True,
        )
        logging.info(
            "Message %s by %s deleted by %s in #%s. Reason: %s",
            message_id, author, interaction.user, channel.name, reason,
        )

        log_embed = action_embed(author, interaction.user, "🗑 Message removed", reason)
        log_embed.description = f"```{_shorten(content, LOG_MESSAGE_CONTENT_MAX)}```"
        log_embed.add_field(name="Channel", value=channel.mention, inline=True)
        await modlog(self.bot, interaction.guild, log_embed)  # type: ignore[arg-type]

    # ── LOG CHANNEL ────────────────────────────────────────────────
    @app_commands.command(
        name="logs",
        description="Set the channel where moderation actions are logged.",
    )
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    @app_commands.describe(channel="Text channel for the mod log.")
    async def logs_cmd(
        self,
        interaction: discord.Interaction,
        channel: discord.TextChannel,
    ):
        self.bot.log_channels.set(channel.guild.id, channel.id)
        logging.info("Mod log for guild %s set to #%s (%s)", channel.guild.id, channel.name, channel.id)

        await interaction.response.send_message(
            f"✅ Moderation logs will be posted in {channel.mention}.",
            ephemeral=True,
        )
        await modlog(
            self.bot,
            channel.guild,
            discord.Embed(
                title="📋 Logging enabled",
                description=f"Set up by {interaction.user.mention}.",
                color=discord.Color.green(),
                timestamp=discord.utils.utcnow(),
            ),
        )


# ── SETUP ──────────────────────────────────────────────────────────
async def setup(bot: commands.Bot):
    await bot.add_cog(Moderation(bot))

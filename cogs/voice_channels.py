# cogs/voice_channels.py
from __future__ import annotations

import logging
from typing import List, Optional, Set, Union

import discord
from discord import app_commands
from discord.ext import commands

import config
import permissions
from errors import (
    ChannelCreationFailed,
    ChannelGone,
    DeletionFailed,
    MoveFailed,
    NotificationFailed,
    PermissionGrantFailed,
    PlatformError,
)
from provisioner import (
    PermissionGrant,
    ProvisionerStore,
    TemplateChannelConfig,
    TemplateContext,
    VoiceProvisioner,
    VoiceStateChanged,
)

LOG = logging.getLogger(__name__)

AUDIT_REASON = "Join-to-create"


# ── DISCORD ADAPTER ────────────────────────────────────────────────

class DiscordVoicePlatform:
    """VoicePlatform on top of discord.py. Translates HTTP errors into our taxonomy."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise PlatformError(f"Guild {guild_id} is not available")
        return guild

    def _voice_channel(self, channel_id: int) -> discord.VoiceChannel:
        ch = self.bot.get_channel(channel_id)
        if not isinstance(ch, discord.VoiceChannel):
            raise ChannelGone(f"Voice channel {channel_id} not found")
        return ch

    async def _target(
        self, guild: discord.Guild, grant: PermissionGrant
    ) -> Union[discord.Role, discord.Member]:
        if grant.is_role:
            role = guild.get_role(grant.subject_id)
            if role is None:
                raise PermissionGrantFailed(f"Role {grant.subject_id} not found")
            return role

        member = guild.get_member(grant.subject_id)
        if member is None:
            try:
                member = await guild.fetch_member(grant.subject_id)
            except discord.HTTPException as exc:
                raise PermissionGrantFailed(f"Member {grant.subject_id} not found") from exc
        return member

    async def resolve_template(self, guild_id: int, template_channel_id: int) -> TemplateContext:
        guild = self._guild(guild_id)
        template = guild.get_channel(template_channel_id)
        if not isinstance(template, discord.VoiceChannel):
            raise ChannelGone(f"Template channel {template_channel_id} not found")

        if template.category_id is not None and template.category is None:
            raise PlatformError(f"Category {template.category_id} of template {template_channel_id} not found")

        return TemplateContext(
            category_id=template.category_id,
            user_limit=template.user_limit or 0,
            bitrate=template.bitrate,
        )

    async def staff_role_ids(self, guild_id: int) -> List[int]:
        guild = self._guild(guild_id)
        return [
            role.id
            for role in guild.roles
            if not role.is_default() and permissions.role_is_staff(role)
        ]

    async def create_voice_channel(
        self,
        guild_id: int,
        name: str,
        context: TemplateContext,
        base_grants: List[PermissionGrant],
    ) -> int:
        try:
            guild = self._guild(guild_id)
            category = guild.get_channel(context.category_id) if context.category_id else None

            kwargs = {
                "category": category if isinstance(category, discord.CategoryChannel) else None,
                "user_limit": context.user_limit,
                "reason": f"{AUDIT_REASON} channel created",
            }
            if context.bitrate:
                kwargs["bitrate"] = min(context.bitrate, int(guild.bitrate_limit))
            if base_grants:
                overwrites = {}
                for grant in base_grants:
                    overwrites[await self._target(guild, grant)] = discord.PermissionOverwrite(**grant.perms)
                kwargs["overwrites"] = overwrites

            channel = await guild.create_voice_channel(name, **kwargs)
        except (discord.HTTPException, PlatformError) as exc:
            raise ChannelCreationFailed(str(exc)) from exc
        return channel.id

    async def delete_channel(self, channel_id: int) -> None:
        channel = self._voice_channel(channel_id)
        try:
            await channel.delete(reason=f"Empty {AUDIT_REASON} channel cleanup")
        except discord.NotFound as exc:
            raise ChannelGone(str(exc)) from exc
        except discord.HTTPException as exc:
            raise DeletionFailed(str(exc)) from exc

    async def set_permission(self, channel_id: int, grant: PermissionGrant) -> None:
        try:
            channel = self._voice_channel(channel_id)
            target = await self._target(channel.guild, grant)
            await channel.set_permissions(
                target,
                overwrite=discord.PermissionOverwrite(**grant.perms),
                reason=AUDIT_REASON,
            )
        except PermissionGrantFailed:
            raise
        except (discord.HTTPException, ChannelGone) as exc:
            raise PermissionGrantFailed(str(exc)) from exc

    async def move_member(self, guild_id: int, member_id: int, channel_id: int) -> None:
        try:
            guild = self._guild(guild_id)
            channel = self._voice_channel(channel_id)
        except PlatformError as exc:
            raise MoveFailed(str(exc)) from exc

        member = guild.get_member(member_id)
        if member is None or member.voice is None:
            raise MoveFailed(f"Member {member_id} is no longer in voice")
        try:
            await member.move_to(channel, reason=AUDIT_REASON)
        except discord.HTTPException as exc:
            raise MoveFailed(str(exc)) from exc

    async def list_members(self, channel_id: int) -> Set[int]:
        return {m.id for m in self._voice_channel(channel_id).members}

    async def send_message(self, channel_id: int, content: str) -> None:
        try:
            channel = self._voice_channel(channel_id)
            await channel.send(content, allowed_mentions=discord.AllowedMentions(users=True, roles=False, everyone=False))
        except (discord.HTTPException, ChannelGone) as exc:
            raise NotificationFailed(str(exc)) from exc

    async def direct_message(self, member_id: int, content: str) -> None:
        try:
            user = self.bot.get_user(member_id) or await self.bot.fetch_user(member_id)
            await user.send(content)
        except discord.HTTPException as exc:
            raise NotificationFailed(str(exc)) from exc


# ── COG ────────────────────────────────────────────────────────────

class JoinToCreate(commands.Cog):
    """Join-to-create voice channels (public and invite-only)."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        store: Optional[ProvisionerStore] = getattr(bot, "provisioner_store", None)
        if store is None:
            store = ProvisionerStore()
            bot.provisioner_store = store  # type: ignore[attr-defined]
        self.provisioner = VoiceProvisioner(
            store,
            DiscordVoicePlatform(bot),
            debounce_seconds=config.JTC_EMPTY_CHECK_DELAY_SECONDS,
            no_drag_role_id=config.JTC_NO_DRAG_ROLE_ID,
        )

    def cog_unload(self) -> None:
        self.provisioner.close()

    @property
    def store(self) -> ProvisionerStore:
        return self.provisioner.store

    # ── EVENTS ────────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        event = VoiceStateChanged(
            guild_id=member.guild.id,
            member_id=member.id,
            member_name=member.display_name,
            previous_channel_id=before.channel.id if before.channel else None,
            new_channel_id=after.channel.id if after.channel else None,
        )
        try:
            await self.provisioner.on_voice_state_changed(event)
        except Exception:
            LOG.exception("Error handling voice state update for member %s", member.id)

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        if self.provisioner.forget_channel(channel.id):
            LOG.info("Spawned channel %s was deleted outside the bot", channel.id)
        if self.store.remove_template(channel.id):
            LOG.info("Template channel %s was deleted; join-to-create disabled for it", channel.id)

    # ── SLASH COMMANDS ────────────────────────────────────────────

    @app_commands.command(name="join-to-create", description="Make a voice channel spawn personal channels when joined.")
    @app_commands.rename(access="type")
    @app_commands.describe(channel="Voice channel members join to get their own", access="Who can join the spawned channels")
    @app_commands.choices(
        access=[
            app_commands.Choice(name="Public (Open to all members)", value="public"),
            app_commands.Choice(name="Invite Only (Private)", value="private"),
        ]
    )
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    async def join_to_create(
        self,
        interaction: discord.Interaction,
        channel: discord.VoiceChannel,
        access: app_commands.Choice[str],
    ) -> None:
        is_private = access.value == "private"
        self.store.add_template(
            TemplateChannelConfig(
                guild_id=channel.guild.id,
                template_channel_id=channel.id,
                is_private=is_private,
                channel_name=channel.name,
            )
        )
        LOG.info(
            "Join-to-create enabled for %s (%s), %s, in guild %s",
            channel.name,
            channel.id,
            access.value,
            channel.guild.id,
        )
        await interaction.response.send_message(
            f"✅ Successfully configured **{channel.name}** as a join-to-create voice channel.\n"
            f"**Access Type:** {access.name}",
            ephemeral=True,
        )

    @app_commands.command(name="manage-jtc", description="List or remove join-to-create channels.")
    @app_commands.choices(
        action=[
            app_commands.Choice(name="List join-to-create channels", value="list"),
            app_commands.Choice(name="Remove join-to-create from channel", value="remove"),
        ]
    )
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    async def manage_jtc(
        self,
        interaction: discord.Interaction,
        action: app_commands.Choice[str],
        channel: Optional[discord.VoiceChannel] = None,
    ) -> None:
        guild_id = interaction.guild_id or 0

        if action.value == "list":
            templates = self.store.templates_for_guild(guild_id)
            if not templates:
                await interaction.response.send_message(
                    "No join-to-create channels are configured in this server.", ephemeral=True
                )
                return

            lines = [
                f"• **{t.channel_name or 'Unknown Channel'}** (<#{t.template_channel_id}>) - "
                f"{'Invite Only' if t.is_private else 'Public'}"
                for t in templates
            ]
            await interaction.response.send_message(
                "**Join-to-Create Channels:**\n" + "\n".join(lines), ephemeral=True
            )
            return

        if channel is None:
            await interaction.response.send_message(
                "Please specify a channel to remove from join-to-create.", ephemeral=True
            )
            return

        template = self.store.get_template(channel.id)
        if template is None or template.guild_id != guild_id:
            await interaction.response.send_message(
                f"**{channel.name}** is not configured as a join-to-create channel.", ephemeral=True
            )
            return

        self.store.remove_template(channel.id)
        LOG.info("Join-to-create disabled for %s (%s) in guild %s", channel.name, channel.id, guild_id)
        await interaction.response.send_message(
            f"✅ Removed **{channel.name}** from join-to-create system.", ephemeral=True
        )


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(JoinToCreate(bot))

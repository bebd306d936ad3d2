# cogs/tickets.py
from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Optional, Union

import discord
from discord import app_commands
from discord.ext import commands

import config
import permissions
from helpdesk import Ticket, TicketStore, ticket_channel_name, ticket_type
from modlog import modlog

LOG = logging.getLogger(__name__)

HELP_DESK_COLOUR = 0x6E8878
TICKET_COLOUR = 0x5865F2
CLOSED_COLOUR = 0xFF6B6B

HELP_DESK_SELECT_ID = "ticket_select"

Overwrites = Dict[Union[discord.Role, discord.Member], discord.PermissionOverwrite]


def _ts(when: datetime) -> str:
    return f"<t:{int(when.timestamp())}:F>"


def help_desk_embed() -> discord.Embed:
    return discord.Embed(
        title="Welcome to the Help Desk!",
        description=(
            "Need assistance? Request a ticket!\n\n"
            "Click the drop-down menu below and select what you'd like to do. "
            "A private channel will automatically be created for your request."
        ),
        colour=HELP_DESK_COLOUR,
        timestamp=discord.utils.utcnow(),
    )


def ticket_welcome_embed(ticket: Ticket, requester: discord.abc.User) -> discord.Embed:
    title = ticket.kind.title
    embed = discord.Embed(
        title=f"🎫 Ticket #{ticket.number} - {title}",
        description=(
            f"Hello {requester.mention}! Thank you for creating a ticket.\n\n"
            f"A moderator will be with you shortly. Please describe your {title.lower()} in detail."
        ),
        colour=TICKET_COLOUR,
        timestamp=ticket.created_at,
    )
    embed.add_field(name="Ticket Type", value=title, inline=True)
    embed.add_field(name="Created By", value=str(requester), inline=True)
    embed.add_field(name="Created At", value=_ts(ticket.created_at), inline=True)
    return embed


def ticket_archive_embed(
    ticket: Ticket,
    channel_name: str,
    closed_by: discord.abc.User,
    closed_at: datetime,
) -> discord.Embed:
    embed = discord.Embed(
        title="🔒 Ticket Closed",
        description=f"**Ticket:** {channel_name}",
        colour=CLOSED_COLOUR,
        timestamp=closed_at,
    )
    embed.add_field(name="Ticket Type", value=ticket.kind.title, inline=True)
    embed.add_field(name="Requester", value=f"<@{ticket.requester_id}> ({ticket.requester_id})", inline=True)
    embed.add_field(name="Closed By", value=f"{closed_by.mention} ({closed_by.id})", inline=True)
    embed.add_field(name="Created At", value=_ts(ticket.created_at), inline=True)
    embed.add_field(name="Closed At", value=_ts(closed_at), inline=True)
    embed.add_field(name="Channel ID", value=str(ticket.channel_id), inline=True)
    return embed


def ticket_overwrites(guild: discord.Guild, requester: discord.Member) -> Overwrites:
    read_write = dict(view_channel=True, send_messages=True, read_message_history=True)
    overwrites: Overwrites = {
        guild.default_role: discord.PermissionOverwrite(view_channel=False),
        requester: discord.PermissionOverwrite(**read_write),
    }
    for role in guild.roles:
        if not role.is_default() and permissions.role_is_staff(role):
            overwrites[role] = discord.PermissionOverwrite(manage_messages=True, **read_write)
    return overwrites


# ── COMPONENTS ─────────────────────────────────────────────────────

class HelpDeskSelect(discord.ui.Select):
    def __init__(self) -> None:
        super().__init__(
            placeholder="I would like to...",
            min_values=1,
            max_values=1,
            options=[
                discord.SelectOption(label=t.option_label, value=t.value)
                for t in config.TICKET_TYPES
            ],
            custom_id=HELP_DESK_SELECT_ID,  # fixed ID for persistent view
        )

    async def callback(self, interaction: discord.Interaction) -> None:
        cog = interaction.client.get_cog("Tickets")  # type: ignore[attr-defined]
        if not isinstance(cog, Tickets):
            await interaction.response.send_message("Tickets are unavailable right now.", ephemeral=True)
            return
        await cog.open_ticket(interaction, self.values[0])


class HelpDeskView(discord.ui.View):
    def __init__(self) -> None:
        super().__init__(timeout=None)
        self.add_item(HelpDeskSelect())


class TicketCloseButton(
    discord.ui.DynamicItem[discord.ui.Button],
    template=r"ticket:close:(?P<channel_id>\d+)",
):
    def __init__(self, channel_id: int) -> None:
        super().__init__(
            discord.ui.Button(
                label="Close Ticket",
                emoji="🔒",
                style=discord.ButtonStyle.danger,
                custom_id=f"ticket:close:{channel_id}",
            )
        )
        self.channel_id = channel_id

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: discord.ui.Button,
        match: re.Match[str],
    ) -> "TicketCloseButton":
        return cls(int(match["channel_id"]))

    async def callback(self, interaction: discord.Interaction) -> None:
        cog = interaction.client.get_cog("Tickets")  # type: ignore[attr-defined]
        if not isinstance(cog, Tickets):
            await interaction.response.send_message("Tickets are unavailable right now.", ephemeral=True)
            return
        await cog.close_ticket(interaction, self.channel_id)


def close_view(channel_id: int) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(TicketCloseButton(channel_id))
    return view


# ── COG ────────────────────────────────────────────────────────────

class Tickets(commands.Cog):
    """Help-desk dropdown that opens private ticket channels."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        store: Optional[TicketStore] = getattr(bot, "ticket_store", None)
        if store is None:
            store = TicketStore()
            bot.ticket_store = store  # type: ignore[attr-defined]
        self.store = store

    async def cog_load(self) -> None:
        self.bot.add_view(HelpDeskView())

    # ── open ──────────────────────────────────────────────────────

    async def open_ticket(self, interaction: discord.Interaction, value: str) -> None:
        guild = interaction.guild
        requester = interaction.user
        if guild is None or not isinstance(requester, discord.Member):
            await interaction.response.send_message("This can only be used in a server.", ephemeral=True)
            return

        kind = ticket_type(value)
        await interaction.response.defer(ephemeral=True, thinking=True)

        number = self.store.next_number(guild.id)
        category = guild.get_channel(config.TICKET_CATEGORY_ID) if config.TICKET_CATEGORY_ID else None
        try:
            channel = await guild.create_text_channel(
                ticket_channel_name(number, requester.name),
                category=category if isinstance(category, discord.CategoryChannel) else None,
                topic=f"Ticket #{number} - {kind.title} - {requester}",
                overwrites=ticket_overwrites(guild, requester),
                reason=f"Ticket #{number} for {requester}",
            )
        except discord.HTTPException:
            LOG.exception("Failed to create ticket #%d for %s", number, requester.id)
            await interaction.followup.send(
                "❌ Failed to create ticket. Please try again or contact an administrator.",
                ephemeral=True,
            )
            return

        ticket = Ticket(
            guild_id=guild.id,
            channel_id=channel.id,
            number=number,
            requester_id=requester.id,
            kind=kind,
        )
        self.store.register(ticket)

        try:
            await channel.send(embed=ticket_welcome_embed(ticket, requester), view=close_view(channel.id))
        except discord.HTTPException:
            LOG.exception("Failed to post welcome in ticket channel %s", channel.id)

        await interaction.followup.send(
            f"✅ Ticket created! Please check {channel.mention} for further assistance.",
            ephemeral=True,
        )
        LOG.info("Ticket #%d (%s) opened by %s in guild %s", number, kind.value, requester.id, guild.id)

    # ── close ─────────────────────────────────────────────────────

    async def close_ticket(self, interaction: discord.Interaction, channel_id: int) -> None:
        user = interaction.user
        guild = interaction.guild
        if guild is None or not isinstance(user, discord.Member):
            await interaction.response.send_message("This can only be used in a server.", ephemeral=True)
            return

        is_mod = permissions.is_mod_member(user)
        ticket = self.store.get(channel_id)
        if ticket is None and not is_mod:
            await interaction.response.send_message("❌ This ticket is not found in the system.", ephemeral=True)
            return
        if ticket is not None and ticket.requester_id != user.id and not is_mod:
            await interaction.response.send_message(
                "Only the requester or a moderator can close this ticket.", ephemeral=True
            )
            return

        ticket = self.store.close(channel_id)
        channel = guild.get_channel(channel_id)
        closed_at = datetime.now(timezone.utc)

        if ticket is not None:
            name = channel.name if channel is not None else f"ticket-{ticket.number}"
            await self._archive(guild, ticket_archive_embed(ticket, name, user, closed_at))

        embed = discord.Embed(
            title="🔒 Ticket Closed",
            description="This ticket has been closed and logged to the archive.",
            colour=CLOSED_COLOUR,
            timestamp=closed_at,
        )
        embed.add_field(name="Closed By", value=str(user), inline=True)
        embed.add_field(name="Closed At", value=_ts(closed_at), inline=True)
        await interaction.response.send_message(embed=embed)

        if channel is None:
            return
        await asyncio.sleep(config.TICKET_CLOSE_DELAY_SECONDS)
        try:
            await channel.delete(reason=f"Ticket closed by {user}")
            LOG.info("Ticket channel %s deleted by %s", channel_id, user.id)
        except discord.NotFound:
            LOG.info("Ticket channel %s was already gone", channel_id)
        except discord.HTTPException:
            LOG.exception("Failed to delete ticket channel %s", channel_id)

    async def _archive(self, guild: discord.Guild, embed: discord.Embed) -> None:
        archive = guild.get_channel(config.TICKET_ARCHIVE_CHANNEL_ID) if config.TICKET_ARCHIVE_CHANNEL_ID else None
        if not isinstance(archive, discord.TextChannel):
            await modlog(self.bot, guild, embed)
            return
        try:
            await archive.send(embed=embed)
        except discord.HTTPException:
            LOG.exception("Failed to archive ticket in guild %s", guild.id)

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        if self.store.close(channel.id) is not None:
            LOG.info("Ticket channel %s was deleted; forgetting it", channel.id)

    # ── SLASH ─────────────────────────────────────────────────────

    @app_commands.command(name="ticket", description="Set up ticketing system")
    @app_commands.describe(channel="The channel to send the ticket interface to")
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    async def ticket(self, interaction: discord.Interaction, channel: discord.TextChannel) -> None:
        try:
            await channel.send(embed=help_desk_embed(), view=HelpDeskView())
        except discord.HTTPException:
            LOG.exception("Failed to post help desk in #%s", channel.name)
            await interaction.response.send_message(
                "Failed to set up ticket system. Please try again.", ephemeral=True
            )
            return

        await interaction.response.send_message(f"✅ Ticket system set up in {channel.mention}!", ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    bot.add_dynamic_items(TicketCloseButton)
    await bot.add_cog(Tickets(bot))


async def teardown(bot: commands.Bot) -> None:
    bot.remove_dynamic_items(TicketCloseButton)

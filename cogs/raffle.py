# cogs/raffle.py
from __future__ import annotations

import logging
import re
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

import permissions
from errors import RaffleError, RaffleNotFound
from raffles import DrawResult, EntryOutcome, RaffleDuration, RaffleEngine, RaffleState, RaffleStore

LOG = logging.getLogger(__name__)

RAFFLE_COLOUR = 0x6E8878
WINNER_COLOUR = 0xFFD700
ENDED_COLOUR = 0x808080

# Button ids are "raffle:<action>:<name>"; Discord caps custom ids at 100 chars
RAFFLE_NAME_MAX = 80


def custom_id_name_fits(name: str) -> bool:
    """Lower-casing can lengthen a name ("İ" becomes two characters)."""
    return len(name.strip().lower()) <= RAFFLE_NAME_MAX


def _discord_ts(raffle: RaffleState, style: str = "F") -> str:
    return f"<t:{int(raffle.end_time.timestamp())}:{style}>"


def announcement_embed(raffle: RaffleState) -> discord.Embed:
    description = f"**Raffle Name:** {raffle.name}\n\n**Prize:** {raffle.prize}\n\n"
    if raffle.rules:
        description += f"**Rules:**\n{raffle.rules}\n\n"

    winners = "1 winner" if raffle.number_of_winners == 1 else f"{raffle.number_of_winners} winners"
    embed = discord.Embed(
        title="🎉 New Raffle Started!",
        description=description,
        colour=RAFFLE_COLOUR,
        timestamp=raffle.created_at,
    )
    embed.add_field(name="Winners", value=winners, inline=True)
    embed.add_field(name="Entries", value=str(len(raffle.entries)), inline=True)
    embed.add_field(name="End Date", value=_discord_ts(raffle), inline=True)
    embed.add_field(name="Organizer", value=f"<@{raffle.created_by}>", inline=True)
    embed.set_footer(text="Good luck to all participants!")
    return embed


def ended_embed(raffle: RaffleState, entry_count: int) -> discord.Embed:
    embed = announcement_embed(raffle)
    embed.title = "🏆 Raffle Ended!"
    embed.colour = discord.Colour(ENDED_COLOUR)
    embed.set_field_at(1, name="Entries", value=str(entry_count), inline=True)
    embed.set_footer(text="This raffle has ended.")
    return embed


def winners_embed(result: DrawResult) -> discord.Embed:
    raffle = result.raffle
    label = "Winner" if len(result.winners) == 1 else "Winners"
    mentions = ", ".join(f"<@{uid}>" for uid in result.winners)
    embed = discord.Embed(
        title="🏆 Raffle Winners!",
        description=f"**Raffle:** {raffle.name}\n**Prize:** {raffle.prize}\n\n**{label}:**\n{mentions}",
        colour=WINNER_COLOUR,
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(name="Total Entries", value=str(result.valid_count), inline=True)
    embed.add_field(name="Winner(s)", value=str(len(result.winners)), inline=True)
    embed.set_footer(text="Congratulations to the winner(s)!")
    return embed


# ── BUTTONS ────────────────────────────────────────────────────────

class RaffleButton(
    discord.ui.DynamicItem[discord.ui.Button],
    template=r"raffle:(?P<action>enter|pick):(?P<name>.+)",
):
    """Enter / Pick buttons. Dynamic, so they keep working after a restart."""

    def __init__(self, action: str, name: str) -> None:
        key = name.strip().lower()
        if action == "enter":
            button = discord.ui.Button(
                label="🎲 Enter Raffle",
                style=discord.ButtonStyle.primary,
                custom_id=f"raffle:enter:{key}",
            )
        else:
            button = discord.ui.Button(
                label="🏆 Pick Winners & End",
                style=discord.ButtonStyle.danger,
                custom_id=f"raffle:pick:{key}",
            )
        super().__init__(button)
        self.action = action
        self.raffle_name = key

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: discord.ui.Button,
        match: re.Match[str],
    ) -> "RaffleButton":
        return cls(match["action"], match["name"])

    async def callback(self, interaction: discord.Interaction) -> None:
        cog = interaction.client.get_cog("Raffles")  # type: ignore[attr-defined]
        if not isinstance(cog, Raffles):
            await interaction.response.send_message("Raffles are unavailable right now.", ephemeral=True)
            return

        if self.action == "enter":
            await cog.handle_enter(interaction, self.raffle_name)
        else:
            await cog.handle_pick(interaction, self.raffle_name, from_button=True)


def raffle_view(name: str) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(RaffleButton("enter", name))
    view.add_item(RaffleButton("pick", name))
    return view


def ended_view() -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(label="🎲 Enter Raffle", style=discord.ButtonStyle.secondary, custom_id="raffle_ended_enter", disabled=True))
    view.add_item(discord.ui.Button(label="🏆 Raffle Ended", style=discord.ButtonStyle.secondary, custom_id="raffle_ended_pick", disabled=True))
    return view


# ── COG ────────────────────────────────────────────────────────────

class Raffles(commands.Cog):
    """Named raffles with button entry and admin-drawn winners."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        store: Optional[RaffleStore] = getattr(bot, "raffle_store", None)
        if store is None:
            store = RaffleStore()
            bot.raffle_store = store  # type: ignore[attr-defined]
        self.engine = RaffleEngine(store)

    # ── helpers ───────────────────────────────────────────────────

    def _announcement(self, raffle: RaffleState) -> Optional[discord.PartialMessage]:
        if raffle.announcement_message_id is None:
            return None
        channel = self.bot.get_channel(raffle.announcement_channel_id)
        if not isinstance(channel, (discord.TextChannel, discord.Thread, discord.VoiceChannel)):
            return None
        return channel.get_partial_message(raffle.announcement_message_id)

    async def _refresh_entries(self, raffle: RaffleState) -> None:
        message = self._announcement(raffle)
        if message is None:
            return
        try:
            await message.edit(embed=announcement_embed(raffle))
        except discord.HTTPException:
            LOG.exception("Failed to update entry count for raffle %r", raffle.name)

    async def _close_announcement(self, result: DrawResult) -> None:
        message = self._announcement(result.raffle)
        if message is None:
            return
        try:
            await message.edit(embed=ended_embed(result.raffle, result.total_count), view=ended_view())
        except discord.HTTPException:
            LOG.exception("Failed to mark raffle %r as ended", result.raffle.name)

    async def _name_autocomplete(self, interaction: discord.Interaction, current: str) -> List[app_commands.Choice[str]]:
        cur = (current or "").lower()
        return [
            app_commands.Choice(name=r.name, value=r.name)
            for r in self.engine.active_raffles(interaction.guild_id or 0)
            if cur in r.name.lower()
        ][:25]

    # ── entry / draw (shared by buttons and slash commands) ──────

    async def handle_enter(self, interaction: discord.Interaction, name: str) -> None:
        if interaction.guild_id is None:
            await interaction.response.send_message("Raffles only work inside a server.", ephemeral=True)
            return

        try:
            result = self.engine.enter(
                interaction.guild_id,
                name,
                interaction.user.id,
                is_service_account=interaction.user.bot,
            )
        except RaffleError as e:
            await interaction.response.send_message(e.message, ephemeral=True)
            return

        if result.outcome is EntryOutcome.ALREADY_ENTERED:
            await interaction.response.send_message("You are already entered in this raffle!", ephemeral=True)
            return

        raffle = result.raffle
        await interaction.response.send_message(
            "✅ You have successfully entered the raffle!\n\n"
            f"**Prize:** {raffle.prize}\n"
            f"**Ends:** {_discord_ts(raffle, 'R')}\n"
            f"**Total Entries:** {result.entry_count}\n\n"
            "Good luck!",
            ephemeral=True,
        )
        await self._refresh_entries(raffle)

    async def handle_pick(self, interaction: discord.Interaction, name: str, *, from_button: bool = False) -> None:
        guild = interaction.guild
        if guild is None or not isinstance(interaction.user, discord.Member):
            await interaction.response.send_message("Raffles only work inside a server.", ephemeral=True)
            return
        if not permissions.is_admin_member(interaction.user):
            await interaction.response.send_message(
                "You need Administrator permissions to pick raffle winners.", ephemeral=True
            )
            return

        if from_button:
            await interaction.response.defer()
        else:
            await interaction.response.defer(ephemeral=True, thinking=True)

        async def is_bot(member_id: int) -> bool:
            member = guild.get_member(member_id) or await guild.fetch_member(member_id)
            return member.bot

        try:
            result = await self.engine.pick_winners(guild.id, name, interaction.user.id, is_bot)
        except RaffleError as e:
            await interaction.followup.send(e.message, ephemeral=True)
            return

        await self._close_announcement(result)

        raffle = result.raffle
        channel = self.bot.get_channel(raffle.announcement_channel_id) or interaction.channel
        content = f"🎉 **Raffle \"{raffle.name}\" has ended!**"
        try:
            if from_button:
                await interaction.followup.send(content, embed=winners_embed(result))
            else:
                await channel.send(content, embed=winners_embed(result))  # type: ignore[union-attr]
                await interaction.followup.send(f"Winners announced in <#{channel.id}>.", ephemeral=True)  # type: ignore[union-attr]
        except discord.HTTPException:
            LOG.exception("Failed to announce winners for raffle %r", raffle.name)
            mentions = ", ".join(f"<@{uid}>" for uid in result.winners)
            await interaction.followup.send(
                f"Winners were drawn but I couldn't post the announcement: {mentions}", ephemeral=True
            )

    # ── SLASH COMMANDS ────────────────────────────────────────────

    @app_commands.command(name="raffle", description="Start a new raffle")
    @app_commands.describe(
        name="Name/ID for this raffle",
        prize="What prize is being raffled",
        duration="How long should the raffle run?",
        winners="Number of winners (default 1)",
        rules="Rules or description for the raffle (optional)",
    )
    @app_commands.choices(
        duration=[app_commands.Choice(name=d.label, value=d.value) for d in RaffleDuration]
    )
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    async def raffle(
        self,
        interaction: discord.Interaction,
        name: app_commands.Range[str, 1, RAFFLE_NAME_MAX],
        prize: str,
        duration: app_commands.Choice[str],
        winners: app_commands.Range[int, 1, 25] = 1,
        rules: Optional[str] = None,
    ) -> None:
        if not custom_id_name_fits(name):
            await interaction.response.send_message(
                f"Raffle names must be at most {RAFFLE_NAME_MAX} characters.", ephemeral=True
            )
            return

        try:
            raffle = self.engine.start_raffle(
                guild_id=interaction.guild_id or 0,
                name=name,
                prize=prize,
                winner_count=winners,
                duration=RaffleDuration(duration.value),
                rules=rules,
                organizer_id=interaction.user.id,
                channel_id=interaction.channel_id or 0,
            )
        except RaffleError as e:
            await interaction.response.send_message(e.message, ephemeral=True)
            return

        try:
            await interaction.response.send_message(
                f"🎉 **Raffle \"{raffle.name}\" has been started!**",
                embed=announcement_embed(raffle),
                view=raffle_view(raffle.name),
            )
            message = await interaction.original_response()
        except discord.HTTPException:
            LOG.exception("Failed to post raffle %r; discarding it", raffle.name)
            self.engine.discard(raffle.guild_id, raffle.name)
            if not interaction.response.is_done():
                await interaction.response.send_message("Failed to start raffle. Please try again.", ephemeral=True)
            return

        self.engine.attach_announcement(raffle.guild_id, raffle.name, message.id)

    @app_commands.command(name="raffle-enter", description="Enter an active raffle")
    @app_commands.describe(name="Raffle to enter")
    @app_commands.guild_only()
    async def raffle_enter(self, interaction: discord.Interaction, name: str) -> None:
        await self.handle_enter(interaction, name)

    @raffle_enter.autocomplete("name")
    async def raffle_enter_autocomplete(self, interaction: discord.Interaction, current: str):
        return await self._name_autocomplete(interaction, current)

    @app_commands.command(name="raffle-pick", description="Pick winner(s) and end a raffle")
    @app_commands.describe(name="Raffle to draw")
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    async def raffle_pick(self, interaction: discord.Interaction, name: str) -> None:
        await self.handle_pick(interaction, name)

    @raffle_pick.autocomplete("name")
    async def raffle_pick_autocomplete(self, interaction: discord.Interaction, current: str):
        return await self._name_autocomplete(interaction, current)

    @app_commands.command(name="raffle-cancel", description="End a raffle without drawing winners")
    @app_commands.describe(name="Raffle to cancel")
    @app_commands.guild_only()
    @permissions.admin_slash_only()
    async def raffle_cancel(self, interaction: discord.Interaction, name: str) -> None:
        try:
            raffle = self.engine.discard(interaction.guild_id or 0, name)
        except RaffleNotFound as e:
            await interaction.response.send_message(e.message, ephemeral=True)
            return

        message = self._announcement(raffle)
        if message is not None:
            try:
                embed = ended_embed(raffle, len(raffle.entries))
                embed.set_footer(text="This raffle was cancelled.")
                await message.edit(embed=embed, view=ended_view())
            except discord.HTTPException:
                LOG.exception("Failed to mark raffle %r as cancelled", raffle.name)

        await interaction.response.send_message(f"Raffle **{raffle.name}** cancelled.", ephemeral=True)

    @raffle_cancel.autocomplete("name")
    async def raffle_cancel_autocomplete(self, interaction: discord.Interaction, current: str):
        return await self._name_autocomplete(interaction, current)

    @app_commands.command(name="raffle-list", description="Show active raffles")
    @app_commands.guild_only()
    async def raffle_list(self, interaction: discord.Interaction) -> None:
        raffles = self.engine.active_raffles(interaction.guild_id or 0)
        if not raffles:
            await interaction.response.send_message("There are no active raffles right now.", ephemeral=True)
            return

        lines = [
            f"• **{r.name}**: {r.prize} ({len(r.entries)} entries, ends {_discord_ts(r, 'R')})"
            for r in raffles
        ]
        await interaction.response.send_message("**Active raffles:**\n" + "\n".join(lines), ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    bot.add_dynamic_items(RaffleButton)
    await bot.add_cog(Raffles(bot))


async def teardown(bot: commands.Bot) -> None:
    bot.remove_dynamic_items(RaffleButton)

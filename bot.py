import os
import logging
from typing import List

import discord
from discord.ext import commands
from discord import app_commands

import config
import permissions
from media import MediaOnlyStore
from helpdesk import TicketStore
from modlog import LogChannelStore, WarningStore
from provisioner import ProvisionerStore, TemplateChannelConfig
from raffles import RaffleStore

# ───────────────────────────────────────────────────────────────────
# TOKEN
# ───────────────────────────────────────────────────────────────────
TOKEN = os.getenv("DISCORD_TOKEN", "")

# ───────────────────────────────────────────────────────────────────
# COG EXTENSIONS
#   autosync discovers + loads every other cog itself.
# ───────────────────────────────────────────────────────────────────
INITIAL_EXTENSIONS: List[str] = [
    "cogs.autosync",
]

# ───────────────────────────────────────────────────────────────────
# BOT SETUP
# ───────────────────────────────────────────────────────────────────
logging.basicConfig(level=logging.INFO)
intents = discord.Intents.all()  # members, presences and message content are privileged
bot = commands.Bot(command_prefix="!", intents=intents)

# Make Guild ID available to autosync cog (so /sync guild works nicely)
bot.GUILD_ID = config.GUILD_ID

# ───────────────────────────────────────────────────────────────────
# PROCESS-WIDE STATE
#   Lives on the bot so /reload of a cog keeps it. Lost on restart.
# ───────────────────────────────────────────────────────────────────
bot.provisioner_store = ProvisionerStore()
bot.raffle_store = RaffleStore()
bot.log_channels = LogChannelStore()
bot.warning_store = WarningStore()
bot.media_only_store = MediaOnlyStore()
bot.ticket_store = TicketStore()

for template in config.DEFAULT_JTC_TEMPLATES:
    bot.provisioner_store.add_template(
        TemplateChannelConfig(
            guild_id=config.GUILD_ID,
            template_channel_id=template.channel_id,
            is_private=template.is_private,
            channel_name=template.channel_name,
        )
    )


@bot.event
async def setup_hook():
    for ext in INITIAL_EXTENSIONS:
        try:
            await bot.load_extension(ext)
            logging.info("Loaded extension: %s", ext)
        except Exception as e:
            logging.exception("Failed to load %s: %s", ext, e)


# ───────────────────────────────────────────────────────────────────
# LIFECYCLE
# ───────────────────────────────────────────────────────────────────
@bot.event
async def on_ready():
    logging.info("✅ Logged in as %s (ID: %s)", bot.user, bot.user.id)
    logging.info(
        "Join-to-create templates: %s",
        ", ".join(
            f"{t.channel_name or t.template_channel_id} ({'private' if t.is_private else 'public'})"
            for t in bot.provisioner_store.templates_for_guild(config.GUILD_ID)
        ) or "none",
    )


@bot.event
async def on_guild_remove(guild: discord.Guild):
    logging.info("Bot left guild: %s (%s)", guild.name, guild.id)


@bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
    if isinstance(error, app_commands.CheckFailure):
        text = str(error) or "You do not have permission to use this command."
    else:
        logging.error("Slash command failed", exc_info=error)
        text = "Something went wrong. Please try again."

    try:
        if interaction.response.is_done():
            await interaction.followup.send(text, ephemeral=True)
        else:
            await interaction.response.send_message(text, ephemeral=True)
    except discord.HTTPException:
        logging.exception("Could not report command error")


# ───────────────────────────────────────────────────────────────────
# SLASH: /ping (admin only)
# ───────────────────────────────────────────────────────────────────
@bot.tree.command(name="ping", description="Admin ping check")
@permissions.admin_slash_only()
async def ping_command(interaction: discord.Interaction):
    await interaction.response.send_message(
        f"Pong! 🏓 ({round(bot.latency * 1000)} ms)", ephemeral=True
    )


# ───────────────────────────────────────────────────────────────────
# RUN
# ───────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    if not TOKEN:
        raise SystemExit("Set DISCORD_TOKEN before starting the bot.")
    bot.run(TOKEN, log_handler=None)  # basicConfig above already handles logging

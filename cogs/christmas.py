# cogs/christmas.py
# Daily "days until Christmas" post at noon community time,
# September 1 through Christmas Day. /christmas shows today's message.

from __future__ import annotations

import logging
from datetime import date, datetime, time as dtime
from typing import Optional

import discord
from discord.ext import commands, tasks
from discord import app_commands
from zoneinfo import ZoneInfo

import config

log = logging.getLogger(__name__)

TZ = ZoneInfo(config.ST_TIMEZONE)
POST_TIME = dtime(
    hour=config.CHRISTMAS_POST_TIME.hour,
    minute=config.CHRISTMAS_POST_TIME.minute,
    tzinfo=TZ,
)

SEASON_START_MONTH = 9

CHRISTMAS_DAY_TEXT = (
    "🎄✨ **Merry Christmas, everyone!** ✨🎄\n\n"
    "Christmas Day is here! Wishing you all a wonderful day filled with joy, love, and happiness! 🎁🎅"
)
CHRISTMAS_EVE_TEXT = (
    "🎄🎅 **Christmas Eve** 🎅🎄\n\n"
    "Tomorrow is Christmas Day! Only **1 day** left until the most magical day of the year! 🎁✨"
)


def in_countdown_season(today: date) -> bool:
    return date(today.year, SEASON_START_MONTH, 1) <= today <= date(today.year, 12, 25)


def days_until_christmas(today: date) -> int:
    return (date(today.year, 12, 25) - today).days


def christmas_countdown_message(today: date) -> str:
    """Today's countdown text, or "" outside September 1 – December 25."""
    if not in_countdown_season(today):
        return ""

    days_left = days_until_christmas(today)
    if days_left == 0:
        return CHRISTMAS_DAY_TEXT
    if days_left == 1:
        return CHRISTMAS_EVE_TEXT

    emoji = "🎄🎁" if days_left <= 7 else "🎄❄️" if days_left <= 30 else "🎄🍂"
    return (
        f"{emoji} **Christmas Countdown** {emoji}\n\n"
        f"📅 Today is **{today.strftime('%B')} {today.day}**\n"
        f"🎅 **{days_left} days** until Christmas Day! 🎄"
    )


def local_today() -> date:
    return datetime.now(TZ).date()


class ChristmasCountdown(commands.Cog):
    """Pasko countdown posts."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self._last_posted: Optional[date] = None
        self.daily_countdown.start()

    def cog_unload(self) -> None:
        self.daily_countdown.cancel()

    async def post_countdown(self, today: date) -> bool:
        """Post today's message once; returns True if something was sent."""
        if self._last_posted == today:
            return False
        text = christmas_countdown_message(today)
        if not text:
            return False

        channel = self.bot.get_channel(config.CHRISTMAS_CHANNEL_ID)
        if not isinstance(channel, discord.TextChannel):
            log.warning("Christmas channel %s not found", config.CHRISTMAS_CHANNEL_ID)
            return False

        try:
            await channel.send(text)
        except discord.HTTPException:
            log.exception("Failed to post Christmas countdown")
            return False

        self._last_posted = today
        log.info("Posted Christmas countdown for %s (%d days left)", today, days_until_christmas(today))
        return True

    @tasks.loop(time=POST_TIME)
    async def daily_countdown(self) -> None:
        """Runs daily at POST_TIME community time."""
        try:
            await self.post_countdown(local_today())
        except Exception:
            log.exception("Error in Christmas countdown loop")

    @daily_countdown.before_loop
    async def before_daily_countdown(self) -> None:
        # Ensure the bot is ready before starting the loop
        await self.bot.wait_until_ready()

    @app_commands.command(name="christmas", description="How many days until Christmas?")
    async def christmas_cmd(self, interaction: discord.Interaction) -> None:
        text = christmas_countdown_message(local_today())
        if not text:
            await interaction.response.send_message(
                "🎄 The Christmas countdown runs from September 1 to Christmas Day. See you in September!",
                ephemeral=True,
            )
            return
        await interaction.response.send_message(text)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(ChristmasCountdown(bot))

# cogs/streaming.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

import discord
from discord.ext import commands

import config

LOG = logging.getLogger(__name__)

# Members list is incomplete right after connect
STARTUP_SCAN_DELAY_SECONDS = 5


def twitch_username(url: Optional[str]) -> Optional[str]:
    """'https://www.twitch.tv/Foo?ref=x' -> 'Foo'; None for anything else."""
    if not url or "twitch.tv/" not in url:
        return None
    tail = url.split("twitch.tv/", 1)[1]
    name = tail.split("?", 1)[0].split("/", 1)[0].strip()
    return name or None


def twitch_activity(activities: Iterable[discord.BaseActivity]) -> Optional[discord.Streaming]:
    for activity in activities:
        if isinstance(activity, discord.Streaming) and twitch_username(activity.url):
            return activity
    return None


@dataclass
class LiveStream:
    member_id: int
    display_name: str
    twitch_username: str
    started_at: datetime
    notified: bool = False


class StreamTracker:
    """Who is live right now. One session per member until they stop."""

    def __init__(self) -> None:
        self._live: Dict[int, LiveStream] = {}

    def start(self, member_id: int, display_name: str, username: str, now: Optional[datetime] = None) -> Optional[LiveStream]:
        """Returns the new session, or None if the member was already live."""
        if member_id in self._live:
            return None
        session = LiveStream(member_id, display_name, username, now or datetime.now(timezone.utc))
        self._live[member_id] = session
        return session

    def end(self, member_id: int) -> Optional[LiveStream]:
        return self._live.pop(member_id, None)

    def is_live(self, member_id: int) -> bool:
        return member_id in self._live

    def __len__(self) -> int:
        return len(self._live)


class Streaming(commands.Cog):
    """Gives Twitch streamers the streaming role while they are live."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self.tracker = StreamTracker()
        self._scan_task: Optional[asyncio.Task] = None

    async def cog_load(self) -> None:
        self._scan_task = asyncio.create_task(self._startup_scan())

    def cog_unload(self) -> None:
        if self._scan_task is not None:
            self._scan_task.cancel()

    # ── role helpers ──────────────────────────────────────────────

    async def _streaming_role(self, guild: discord.Guild) -> Optional[discord.Role]:
        role = discord.utils.get(guild.roles, name=config.STREAMING_ROLE_NAME)
        if role is not None:
            return role
        try:
            role = await guild.create_role(
                name=config.STREAMING_ROLE_NAME,
                colour=discord.Colour(config.STREAMING_ROLE_COLOUR),
                hoist=True,
                mentionable=False,
                reason="Role for members currently streaming",
            )
            LOG.info("Created '%s' role in guild %s", config.STREAMING_ROLE_NAME, guild.id)
            return role
        except discord.HTTPException:
            LOG.exception("Could not create '%s' role in guild %s", config.STREAMING_ROLE_NAME, guild.id)
            return None

    async def _notify(self, member: discord.Member, session: LiveStream, activity: discord.Streaming) -> None:
        if config.STREAM_NOTIFY_CHANNEL_ID is None:
            return
        channel = self.bot.get_channel(config.STREAM_NOTIFY_CHANNEL_ID)
        if not isinstance(channel, discord.TextChannel):
            LOG.error("Stream notification channel %s not found", config.STREAM_NOTIFY_CHANNEL_ID)
            return

        avatar = member.display_avatar.url
        embed = discord.Embed(
            title=activity.details or activity.name or "Live Stream",
            url=activity.url,
            description=f"🎮 {activity.game or 'Just Chatting'}\n\n**{session.display_name}** is now streaming on Twitch!",
            colour=config.STREAMING_ROLE_COLOUR,
            timestamp=session.started_at,
        )
        embed.set_author(name=session.display_name, icon_url=avatar, url=activity.url)
        embed.set_thumbnail(url=avatar)
        embed.set_footer(text=f"twitch.tv/{session.twitch_username}")
        try:
            await channel.send(f"🔴 **{session.display_name}** is now live on Twitch!", embed=embed)
            session.notified = True
        except discord.HTTPException:
            LOG.exception("Failed to send stream notification for %s", member.id)

    # ── stream start / end ────────────────────────────────────────

    async def handle_stream_start(self, member: discord.Member, activity: discord.Streaming) -> None:
        username = twitch_username(activity.url)
        if username is None:
            return
        session = self.tracker.start(member.id, member.display_name, username)
        if session is None:
            return
        LOG.info("Stream start: %s (%s), member %s", session.display_name, username, member.id)

        role = await self._streaming_role(member.guild)
        if role is not None and role not in member.roles:
            try:
                await member.add_roles(role, reason="Started streaming")
            except discord.HTTPException:
                LOG.exception("Failed to add streaming role to %s", member.id)

        await self._notify(member, session, activity)

    async def handle_stream_end(self, member: discord.Member) -> None:
        session = self.tracker.end(member.id)
        if session is None:
            return
        LOG.info("Stream end: %s (%s), member %s", session.display_name, session.twitch_username, member.id)

        role = discord.utils.get(member.guild.roles, name=config.STREAMING_ROLE_NAME)
        if role is not None and role in member.roles:
            try:
                await member.remove_roles(role, reason="Stopped streaming")
            except discord.HTTPException:
                LOG.exception("Failed to remove streaming role from %s", member.id)

    # ── EVENTS ────────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_presence_update(self, before: discord.Member, after: discord.Member) -> None:
        if after.bot:
            return
        try:
            activity = twitch_activity(after.activities)
            if activity is not None and not self.tracker.is_live(after.id):
                await self.handle_stream_start(after, activity)
            elif activity is None and self.tracker.is_live(after.id):
                await self.handle_stream_end(after)
        except Exception:
            LOG.exception("Error handling presence update for member %s", after.id)

    async def _startup_scan(self) -> None:
        await self.bot.wait_until_ready()
        await asyncio.sleep(STARTUP_SCAN_DELAY_SECONDS)
        for guild in self.bot.guilds:
            for member in guild.members:
                if member.bot:
                    continue
                activity = twitch_activity(member.activities)
                try:
                    if activity is not None:
                        await self.handle_stream_start(member, activity)
                    else:
                        stale = discord.utils.get(member.roles, name=config.STREAMING_ROLE_NAME)
                        if stale is not None:
                            # Role left over from before a restart
                            await member.remove_roles(stale, reason="No longer streaming")
                except Exception:
                    LOG.exception("Startup stream scan failed for member %s", member.id)
        LOG.info("Startup stream scan done: %d live", len(self.tracker))


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(Streaming(bot))

# modlog.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import discord

import config

LOG = logging.getLogger(__name__)


class LogChannelStore:
    """Per-guild mod-log channel chosen with /logs."""

    def __init__(self) -> None:
        self._channels: Dict[int, int] = {}

    def set(self, guild_id: int, channel_id: int) -> None:
        self._channels[guild_id] = channel_id

    def get(self, guild_id: int) -> Optional[int]:
        return self._channels.get(guild_id, config.MODLOG_CHANNEL_ID)


async def modlog(bot: discord.Client, guild: discord.Guild, embed: discord.Embed) -> None:
    """Send an embed to the guild's mod-log channel, if any."""
    store: Optional[LogChannelStore] = getattr(bot, "log_channels", None)
    channel_id = store.get(guild.id) if store else config.MODLOG_CHANNEL_ID
    if channel_id is None:
        return

    ch = guild.get_channel(channel_id)
    if isinstance(ch, discord.TextChannel):
        try:
            await ch.send(embed=embed)
        except discord.HTTPException:
            LOG.exception("Failed to post modlog in guild %s", guild.id)


def action_embed(
    user: discord.abc.User,
    actor: discord.abc.User,
    action: str,
    reason: Optional[str] = None,
    colour: int = 0xED4245,
) -> discord.Embed:
    e = discord.Embed(title=action, color=colour, timestamp=discord.utils.utcnow())
    e.add_field(name="User", value=f"{user.mention} ({user.id})", inline=True)
    e.add_field(name="By", value=f"{actor.mention} ({actor.id})", inline=True)
    if reason:
        e.add_field(name="Reason", value=reason[:1000], inline=False)
    return e


# ── WARNINGS ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class WarningRecord:
    number: int
    reason: str
    moderator_id: int
    created_at: datetime


class WarningStore:
    """
    In-memory warnings keyed by (guild_id, user_id).

    Numbers keep increasing per user, so clearing #2 never renumbers #3.
    """

    def __init__(self) -> None:
        self._warnings: Dict[Tuple[int, int], List[WarningRecord]] = {}
        self._next_number: Dict[Tuple[int, int], int] = {}

    def add(
        self,
        guild_id: int,
        user_id: int,
        reason: str,
        moderator_id: int,
        now: Optional[datetime] = None,
    ) -> WarningRecord:
        key = (guild_id, user_id)
        number = self._next_number.get(key, 1)
        self._next_number[key] = number + 1

        record = WarningRecord(
            number=number,
            reason=reason,
            moderator_id=moderator_id,
            created_at=now or datetime.now(timezone.utc),
        )
        self._warnings.setdefault(key, []).append(record)
        return record

    def list(self, guild_id: int, user_id: int) -> List[WarningRecord]:
        return list(self._warnings.get((guild_id, user_id), []))

    def remove(self, guild_id: int, user_id: int, numbers: Iterable[int]) -> List[int]:
        """Drop the given warning numbers; returns the ones that existed."""
        wanted = set(numbers)
        current = self._warnings.get((guild_id, user_id), [])
        removed = [w.number for w in current if w.number in wanted]
        if removed:
            self._warnings[(guild_id, user_id)] = [w for w in current if w.number not in wanted]
        return removed

    def clear(self, guild_id: int, user_id: int) -> int:
        return len(self._warnings.pop((guild_id, user_id), []))


def parse_warning_numbers(text: str) -> Optional[List[int]]:
    """
    "1, 3,5" -> [1, 3, 5]; "all" -> None.

    Raises ValueError when nothing usable is given.
    """
    text = text.strip()
    if text.lower() == "all":
        return None

    numbers = [int(part) for part in (p.strip() for p in text.split(",")) if part.isdigit()]
    if not numbers:
        raise ValueError(f"No warning numbers in {text!r}")
    return numbers

# helpdesk.py
"""
Help-desk tickets.

A member picks a request type from the help-desk dropdown and gets a private
text channel numbered per guild ("ticket-7-juan"). Closing the ticket
archives a summary and deletes the channel. Everything here is in-memory;
numbering restarts with the bot.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import config
from config import TicketType

_SLUG_RE = re.compile(r"[^a-z0-9]")

FALLBACK_TYPE = TicketType("other", "Other", "Other")


def ticket_type(value: str) -> TicketType:
    for t in config.TICKET_TYPES:
        if t.value == value:
            return t
    return FALLBACK_TYPE


def ticket_channel_name(number: int, username: str) -> str:
    slug = _SLUG_RE.sub("", username.lower())
    return f"ticket-{number}-{slug}" if slug else f"ticket-{number}"


@dataclass
class Ticket:
    guild_id: int
    channel_id: int
    number: int
    requester_id: int
    kind: TicketType
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TicketStore:
    """Open tickets by channel id, plus a running number per guild."""

    def __init__(self) -> None:
        self._open: Dict[int, Ticket] = {}
        self._counters: Dict[int, int] = {}

    def next_number(self, guild_id: int) -> int:
        number = self._counters.get(guild_id, 0) + 1
        self._counters[guild_id] = number
        return number

    def register(self, ticket: Ticket) -> None:
        self._open[ticket.channel_id] = ticket

    def get(self, channel_id: int) -> Optional[Ticket]:
        return self._open.get(channel_id)

    def close(self, channel_id: int) -> Optional[Ticket]:
        """Remove and return the ticket; None if it was already closed."""
        return self._open.pop(channel_id, None)

    def for_guild(self, guild_id: int) -> List[Ticket]:
        return sorted(
            (t for t in self._open.values() if t.guild_id == guild_id),
            key=lambda t: t.number,
        )

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._open

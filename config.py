# config.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import time as dtime
from typing import Final, Optional

# ─────────────────────────────────────────────
# GUILD / TIMEZONE
# ─────────────────────────────────────────────

# Main community server
GUILD_ID: Final[int] = 1355432987793297498

# Community time (Christmas countdown)
ST_TIMEZONE: Final[str] = "Asia/Manila"

# ─────────────────────────────────────────────
# CHANNEL IDS
# ─────────────────────────────────────────────

# Fallback mod-log channel when /logs hasn't been used (None = disabled)
MODLOG_CHANNEL_ID: Optional[int] = None

# Daily Christmas countdown posts
CHRISTMAS_CHANNEL_ID: Final[int] = 1397748954111672352

# "Now live" announcements (None = only toggle the role)
STREAM_NOTIFY_CHANNEL_ID: Optional[int] = None

# New ticket channels are created under this category (None = top level)
TICKET_CATEGORY_ID: Optional[int] = 1400294589599846511

# Closed tickets are summarized here (None = the mod-log channel)
TICKET_ARCHIVE_CHANNEL_ID: Optional[int] = 1400295230099558421

# ─────────────────────────────────────────────
# JOIN-TO-CREATE
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class DefaultTemplate:
    channel_id: int
    channel_name: str
    is_private: bool


# Pre-configured on startup; /join-to-create adds more at runtime
DEFAULT_JTC_TEMPLATES: Final[tuple[DefaultTemplate, ...]] = (
    DefaultTemplate(1336054025925169226, "exclu-vc", is_private=True),
    DefaultTemplate(1232496558042517534, "inclu-vc", is_private=False),
)

# Wait before re-checking whether a spawned channel is empty
JTC_EMPTY_CHECK_DELAY_SECONDS: Final[float] = 1.0

# Role that may see private channels but never connect or drag anyone in
# (Tambay). None to skip the overwrite.
JTC_NO_DRAG_ROLE_ID: Final[Optional[int]] = 1397749137808150629

# ─────────────────────────────────────────────
# ROLES
# ─────────────────────────────────────────────

ADMIN_ROLE_NAMES: Final[tuple[str, ...]] = (
    "Admin",
    "Moderator",
)

STREAMING_ROLE_NAME: Final[str] = "streaming now"
STREAMING_ROLE_COLOUR: Final[int] = 0x9146FF  # Twitch purple

# Decorative prefix some self-assign roles carry ("ᴗ• Luzon")
ROLE_NAME_PREFIX: Final[str] = "ᴗ•"


@dataclass(frozen=True)
class RoleMenu:
    category: str
    title: str
    role_names: tuple[str, ...]
    max_values: int
    placeholder: str


# One select menu per row; /post-roles posts them in this order
ROLE_MENUS: Final[tuple[RoleMenu, ...]] = (
    RoleMenu(
        category="location",
        title="Where are you based?",
        role_names=("Luzon", "Visayas", "Mindanao", "US", "CA", "Other"),
        max_values=1,
        placeholder="Select your location…",
    ),
    RoleMenu(
        category="pronouns",
        title="How should we call you?",
        role_names=("ate", "kuya", "maam/sir"),
        max_values=1,
        placeholder="Select your pronouns…",
    ),
    RoleMenu(
        category="age",
        title="Age bracket",
        role_names=("17-", "18+"),
        max_values=1,
        placeholder="Select your age bracket…",
    ),
    RoleMenu(
        category="games",
        title="Games you play",
        role_names=(
            "Apex", "CSGO", "Dota", "League", "Marvel Rivals",
            "Minecraft", "Mobile Legends", "Overwatch", "Tetris", "Valorant",
        ),
        max_values=10,
        placeholder="Select your games…",
    ),
    RoleMenu(
        category="activities",
        title="Activities",
        role_names=("E-numan", "Game night", "Movie night", "Voice call"),
        max_values=4,
        placeholder="Select activities to get pinged for…",
    ),
)

# ─────────────────────────────────────────────
# SCHEDULES
# ─────────────────────────────────────────────

CHRISTMAS_POST_TIME: Final[dtime] = dtime(hour=12, minute=0)

# ─────────────────────────────────────────────
# TICKETS
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class TicketType:
    value: str
    option_label: str
    title: str


# Help-desk dropdown, in display order
TICKET_TYPES: Final[tuple[TicketType, ...]] = (
    TicketType("report_concern", "☰ Report a concern", "Report Concern"),
    TicketType("host_event", "✷ Host an event", "Host Event"),
    TicketType("collaborate", "✎ Collaborate", "Collaborate"),
    TicketType("suggestion", "✾ Suggest an idea", "Suggestion"),
    TicketType("partnership", "⚑ Apply for partnership", "Partnership"),
    TicketType("other", "⋰ Other", "Other"),
)

# Grace period between "Close Ticket" and the channel being deleted
TICKET_CLOSE_DELAY_SECONDS: Final[float] = 10.0

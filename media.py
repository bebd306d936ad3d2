# media.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

MEDIA_EXTENSIONS = (
    "png", "jpg", "jpeg", "gif", "webp", "bmp", "heic",
    "mp4", "mov", "webm", "mkv", "avi",
    "mp3", "wav", "ogg", "m4a", "flac",
)

MEDIA_CONTENT_TYPES = ("image/", "video/", "audio/")

# Link previews that Discord renders as media
MEDIA_EMBED_TYPES = frozenset({"image", "video", "gifv"})

MEDIA_URL_RE = re.compile(
    r"https?://\S+?\.(?:" + "|".join(MEDIA_EXTENSIONS) + r")(?:\?\S*)?(?=\s|$)"
    r"|https?://(?:www\.|m\.|vm\.|i\.)?(?:youtube\.com|youtu\.be|tenor\.com|giphy\.com|imgur\.com|tiktok\.com)/\S+"
    r"|https?://clips\.twitch\.tv/\S+",
    re.IGNORECASE,
)


def attachment_is_media(filename: str, content_type: Optional[str]) -> bool:
    if content_type and content_type.lower().startswith(MEDIA_CONTENT_TYPES):
        return True
    _, dot, ext = filename.rpartition(".")
    return bool(dot) and ext.lower() in MEDIA_EXTENSIONS


def message_has_media(
    content: str,
    attachments: Iterable[Tuple[str, Optional[str]]] = (),
    embed_types: Iterable[str] = (),
) -> bool:
    """
    True when a message carries an image, video or audio clip.

    attachments are (filename, content_type) pairs; embed_types are the
    Discord embed kinds ("image", "video", "rich", ...).
    """
    if any(attachment_is_media(name, ctype) for name, ctype in attachments):
        return True
    if any(t in MEDIA_EMBED_TYPES for t in embed_types):
        return True
    return bool(MEDIA_URL_RE.search(content or ""))


@dataclass(frozen=True)
class MediaOnlyChannel:
    guild_id: int
    channel_id: int
    channel_name: str


class MediaOnlyStore:
    """Channels where only media posts are allowed."""

    def __init__(self) -> None:
        self._channels: Dict[int, MediaOnlyChannel] = {}

    def add(self, guild_id: int, channel_id: int, channel_name: str) -> bool:
        """Returns False if the channel was already media-only."""
        if channel_id in self._channels:
            return False
        self._channels[channel_id] = MediaOnlyChannel(guild_id, channel_id, channel_name)
        return True

    def remove(self, channel_id: int) -> Optional[MediaOnlyChannel]:
        return self._channels.pop(channel_id, None)

    def for_guild(self, guild_id: int) -> List[MediaOnlyChannel]:
        return sorted(
            (c for c in self._channels.values() if c.guild_id == guild_id),
            key=lambda c: c.channel_name.lower(),
        )

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

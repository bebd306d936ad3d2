# provisioner.py
"""
Join-to-create voice channels.

Joining a template channel spawns a fresh voice channel owned by the member.
Private templates spawn invite-only channels: @everyone can see them but not
connect, the owner and staff roles get full access, and anyone the owner
drags in is granted standing access. An optional no-drag role can see private
channels but may neither connect nor move members into them. Spawned
channels are reclaimed once they are empty.

All Discord I/O goes through a `VoicePlatform`, so the state machine here can
be driven by fakes in tests.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Protocol, Set

from errors import (
    ChannelCreationFailed,
    ChannelGone,
    DeletionFailed,
    MoveFailed,
    NotificationFailed,
    PermissionGrantFailed,
    PlatformError,
)

LOG = logging.getLogger(__name__)

CHANNEL_NAME_MAX = 100

# Permission sets use discord.Permissions attribute names.
PermissionMap = Mapping[str, bool]

PUBLIC_OWNER_PERMS: PermissionMap = {
    "move_members": True,
    "manage_channels": True,
}

PRIVATE_EVERYONE_PERMS: PermissionMap = {
    "view_channel": True,
    "connect": False,
}

PRIVATE_OWNER_PERMS: PermissionMap = {
    "view_channel": True,
    "connect": True,
    "speak": True,
    "use_voice_activation": True,
    "stream": True,
    "send_messages": True,
    "read_message_history": True,
    "embed_links": True,
    "attach_files": True,
    "use_external_emojis": True,
    "add_reactions": True,
    "move_members": True,
    "manage_channels": True,
    "manage_roles": True,
}

STAFF_PERMS: PermissionMap = {
    "view_channel": True,
    "connect": True,
    "speak": True,
    "use_voice_activation": True,
    "stream": True,
    "send_messages": True,
    "read_message_history": True,
    "embed_links": True,
    "attach_files": True,
    "use_external_emojis": True,
    "add_reactions": True,
    "move_members": True,
    "manage_channels": True,
}

NO_DRAG_PERMS: PermissionMap = {
    "view_channel": True,
    "connect": False,
    "move_members": False,
}

INVITEE_PERMS: PermissionMap = {
    "view_channel": True,
    "connect": True,
    "speak": True,
    "use_voice_activation": True,
    "stream": True,
    "send_messages": True,
    "read_message_history": True,
    "embed_links": True,
    "attach_files": True,
    "use_external_emojis": True,
    "add_reactions": True,
}

PRIVATE_WELCOME_TEXT = (
    "<@{owner_id}> 🔒 **Private Voice Channel Created**\n\n"
    "Welcome to your private voice channel, {owner_name}!\n\n"
    "**How to invite others:**\n"
    "• Drag members from another voice channel into this one\n"
    "• Or ask a moderator to move members here\n\n"
    "*Note: Admins and moderators can always see and join this channel.*"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def channel_name_for(display_name: str) -> str:
    """Name for a spawned channel. Collisions are fine; ids are what matter."""
    name = f"{display_name.strip() or 'Someone'}'s Channel"
    return name[:CHANNEL_NAME_MAX]


# ─────────────────────────────────────────────
# Data
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class TemplateChannelConfig:
    guild_id: int
    template_channel_id: int
    is_private: bool
    channel_name: str = ""


@dataclass
class ProvisionedChannel:
    channel_id: int
    owner_id: int
    parent_template_id: int
    is_private: bool
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class PermissionGrant:
    subject_id: int
    is_role: bool
    perms: PermissionMap


@dataclass(frozen=True)
class TemplateContext:
    """What a spawned channel copies from its template."""

    category_id: Optional[int]
    user_limit: int = 0
    bitrate: Optional[int] = None


@dataclass(frozen=True)
class VoiceStateChanged:
    guild_id: int
    member_id: int
    member_name: str
    previous_channel_id: Optional[int]
    new_channel_id: Optional[int]


class ProvisionerStore:
    """Template configuration plus the registry of channels we must reclaim."""

    def __init__(self) -> None:
        self._templates: Dict[int, TemplateChannelConfig] = {}
        self._channels: Dict[int, ProvisionedChannel] = {}

    # templates
    def add_template(self, template: TemplateChannelConfig) -> None:
        self._templates[template.template_channel_id] = template

    def remove_template(self, template_channel_id: int) -> Optional[TemplateChannelConfig]:
        return self._templates.pop(template_channel_id, None)

    def get_template(self, channel_id: int) -> Optional[TemplateChannelConfig]:
        return self._templates.get(channel_id)

    def templates_for_guild(self, guild_id: int) -> List[TemplateChannelConfig]:
        return [t for t in self._templates.values() if t.guild_id == guild_id]

    # provisioned channels
    def register(self, channel: ProvisionedChannel) -> bool:
        """Insert if absent. Returns False when the id is already tracked."""
        if channel.channel_id in self._channels:
            return False
        self._channels[channel.channel_id] = channel
        return True

    def unregister(self, channel_id: int) -> Optional[ProvisionedChannel]:
        return self._channels.pop(channel_id, None)

    def get(self, channel_id: int) -> Optional[ProvisionedChannel]:
        return self._channels.get(channel_id)

    def channels(self) -> List[ProvisionedChannel]:
        return list(self._channels.values())

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)


class VoicePlatform(Protocol):
    """Discord operations the provisioner needs. Every call may raise PlatformError."""

    async def resolve_template(self, guild_id: int, template_channel_id: int) -> TemplateContext: ...

    async def staff_role_ids(self, guild_id: int) -> List[int]: ...

    async def create_voice_channel(
        self,
        guild_id: int,
        name: str,
        context: TemplateContext,
        base_grants: List[PermissionGrant],
    ) -> int: ...

    async def delete_channel(self, channel_id: int) -> None: ...

    async def set_permission(self, channel_id: int, grant: PermissionGrant) -> None: ...

    async def move_member(self, guild_id: int, member_id: int, channel_id: int) -> None: ...

    async def list_members(self, channel_id: int) -> Set[int]: ...

    async def send_message(self, channel_id: int, content: str) -> None: ...

    async def direct_message(self, member_id: int, content: str) -> None: ...


# ─────────────────────────────────────────────
# State machine
# ─────────────────────────────────────────────

class VoiceProvisioner:
    """Reacts to voice-state changes for template and spawned channels."""

    def __init__(
        self,
        store: ProvisionerStore,
        platform: VoicePlatform,
        *,
        debounce_seconds: float = 1.0,
        no_drag_role_id: Optional[int] = None,
    ) -> None:
        self.store = store
        self.platform = platform
        self.debounce_seconds = debounce_seconds
        self.no_drag_role_id = no_drag_role_id
        self._checks: Dict[int, Set[asyncio.Task]] = {}
        self._reclaiming: Set[int] = set()

    # ── queries ─────────────────────────────────────────────────

    def is_managed(self, channel_id: int) -> bool:
        return channel_id in self.store

    def owner_of(self, channel_id: int) -> Optional[int]:
        entry = self.store.get(channel_id)
        return entry.owner_id if entry else None

    def is_private(self, channel_id: int) -> bool:
        entry = self.store.get(channel_id)
        return bool(entry and entry.is_private)

    def pending_checks(self, channel_id: int) -> int:
        return len(self._checks.get(channel_id, ()))

    # ── entry point ─────────────────────────────────────────────

    async def on_voice_state_changed(self, event: VoiceStateChanged) -> None:
        if event.previous_channel_id == event.new_channel_id:
            # mute/deafen/stream toggles
            return

        if event.new_channel_id is not None:
            template = self.store.get_template(event.new_channel_id)
            if template is not None and template.guild_id == event.guild_id:
                await self.handle_template_join(template, event)
            else:
                await self._maybe_grant_invitee(event)

        if event.previous_channel_id is not None and event.previous_channel_id in self.store:
            self.schedule_emptiness_check(event.previous_channel_id)

    # ── join a template ─────────────────────────────────────────

    async def handle_template_join(
        self, template: TemplateChannelConfig, event: VoiceStateChanged
    ) -> Optional[ProvisionedChannel]:
        guild_id = event.guild_id
        owner_id = event.member_id

        try:
            context = await self.platform.resolve_template(guild_id, template.template_channel_id)
            staff_roles = await self.platform.staff_role_ids(guild_id) if template.is_private else []
        except PlatformError:
            LOG.exception(
                "Could not resolve template %s in guild %s; skipping channel creation",
                template.template_channel_id,
                guild_id,
            )
            return None

        name = channel_name_for(event.member_name)
        base_grants: List[PermissionGrant] = []
        if template.is_private:
            # the @everyone role shares the guild's id
            base_grants.append(PermissionGrant(guild_id, True, PRIVATE_EVERYONE_PERMS))

        try:
            channel_id = await self.platform.create_voice_channel(guild_id, name, context, base_grants)
        except ChannelCreationFailed:
            LOG.exception("Failed to create join-to-create channel for member %s", owner_id)
            return None

        entry = ProvisionedChannel(
            channel_id=channel_id,
            owner_id=owner_id,
            parent_template_id=template.template_channel_id,
            is_private=template.is_private,
        )
        if not self.store.register(entry):
            LOG.warning("Channel %s was already registered; keeping the existing entry", channel_id)
            entry = self.store.get(channel_id) or entry

        for grant in self._creation_grants(template, owner_id, guild_id, staff_roles):
            await self._grant(channel_id, grant)

        try:
            await self.platform.move_member(guild_id, owner_id, channel_id)
        except MoveFailed:
            LOG.warning(
                "Could not move member %s into new channel %s; it will be reclaimed when empty",
                owner_id,
                channel_id,
            )
            self.schedule_emptiness_check(channel_id)

        if template.is_private:
            await self._send_private_welcome(channel_id, owner_id, event.member_name)

        LOG.info(
            "Created %s join-to-create channel %r (%s) for member %s",
            "PRIVATE" if template.is_private else "PUBLIC",
            name,
            channel_id,
            owner_id,
        )
        return entry

    def _creation_grants(
        self,
        template: TemplateChannelConfig,
        owner_id: int,
        guild_id: int,
        staff_roles: List[int],
    ) -> List[PermissionGrant]:
        if not template.is_private:
            return [PermissionGrant(owner_id, False, PUBLIC_OWNER_PERMS)]

        grants = [PermissionGrant(owner_id, False, PRIVATE_OWNER_PERMS)]
        if self.no_drag_role_id is not None and self.no_drag_role_id != guild_id:
            grants.append(PermissionGrant(self.no_drag_role_id, True, NO_DRAG_PERMS))
        grants.extend(
            PermissionGrant(role_id, True, STAFF_PERMS)
            for role_id in staff_roles
            if role_id != guild_id
        )
        return grants

    async def _grant(self, channel_id: int, grant: PermissionGrant) -> bool:
        for attempt in (1, 2):
            try:
                await self.platform.set_permission(channel_id, grant)
                return True
            except PermissionGrantFailed:
                if attempt == 2:
                    LOG.exception(
                        "Giving up on permissions for %s %s in channel %s",
                        "role" if grant.is_role else "member",
                        grant.subject_id,
                        channel_id,
                    )
        return False

    async def _send_private_welcome(self, channel_id: int, owner_id: int, owner_name: str) -> None:
        text = PRIVATE_WELCOME_TEXT.format(owner_id=owner_id, owner_name=owner_name)
        try:
            await self.platform.send_message(channel_id, text)
            return
        except NotificationFailed:
            LOG.warning("Could not post welcome in channel %s, trying DM to %s", channel_id, owner_id)

        try:
            await self.platform.direct_message(owner_id, text)
        except NotificationFailed:
            LOG.error("Could not send private channel welcome to member %s", owner_id)

    # ── someone dragged into a private channel ──────────────────

    async def _maybe_grant_invitee(self, event: VoiceStateChanged) -> None:
        entry = self.store.get(event.new_channel_id) if event.new_channel_id is not None else None
        if entry is None or not entry.is_private or event.member_id == entry.owner_id:
            return

        if await self._grant(entry.channel_id, PermissionGrant(event.member_id, False, INVITEE_PERMS)):
            LOG.info("Granted access to member %s for private channel %s", event.member_id, entry.channel_id)

    # ── reclaim ─────────────────────────────────────────────────

    def schedule_emptiness_check(self, channel_id: int) -> asyncio.Task:
        task = asyncio.create_task(
            self._check_and_reclaim(channel_id),
            name=f"jtc.reclaim.{channel_id}",
        )
        bucket = self._checks.setdefault(channel_id, set())
        bucket.add(task)

        def _done(t: asyncio.Task) -> None:
            pending = self._checks.get(channel_id)
            if pending is not None:
                pending.discard(t)
                if not pending:
                    self._checks.pop(channel_id, None)
            if not t.cancelled() and t.exception() is not None:
                LOG.error("Emptiness check for channel %s crashed", channel_id, exc_info=t.exception())

        task.add_done_callback(_done)
        return task

    async def _check_and_reclaim(self, channel_id: int) -> bool:
        await asyncio.sleep(self.debounce_seconds)

        entry = self.store.get(channel_id)
        if entry is None or channel_id in self._reclaiming:
            return False

        try:
            members = await self.platform.list_members(channel_id)
        except ChannelGone:
            LOG.info("Channel %s disappeared; forgetting it", channel_id)
            self.store.unregister(channel_id)
            return False
        except PlatformError:
            LOG.exception("Could not read members of channel %s", channel_id)
            return False

        if members:
            return False

        # another check may have claimed it while we were awaiting
        if channel_id in self._reclaiming or self.store.get(channel_id) is not entry:
            return False

        self._reclaiming.add(channel_id)
        try:
            await self.platform.delete_channel(channel_id)
        except ChannelGone:
            self.store.unregister(channel_id)
            return False
        except DeletionFailed:
            LOG.exception("Failed to delete empty channel %s; keeping it registered", channel_id)
            return False
        finally:
            self._reclaiming.discard(channel_id)

        self.store.unregister(channel_id)
        LOG.info("Deleted empty join-to-create channel %s", channel_id)
        return True

    def forget_channel(self, channel_id: int) -> Optional[ProvisionedChannel]:
        """Drop a channel that was deleted outside the bot."""
        return self.store.unregister(channel_id)

    async def drain(self) -> None:
        """Wait for all scheduled emptiness checks to finish."""
        while self._checks:
            tasks = [t for bucket in self._checks.values() for t in bucket]
            await asyncio.gather(*tasks, return_exceptions=True)

    def close(self) -> None:
        for bucket in list(self._checks.values()):
            for task in bucket:
                task.cancel()
        self._checks.clear()

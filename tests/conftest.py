from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import pytest

from errors import (
    ChannelCreationFailed,
    ChannelGone,
    DeletionFailed,
    MoveFailed,
    NotificationFailed,
    PermissionGrantFailed,
)
from provisioner import (
    PermissionGrant,
    ProvisionerStore,
    TemplateChannelConfig,
    TemplateContext,
    VoiceProvisioner,
    VoiceStateChanged,
)

GUILD_ID = 1355432987793297498
EXCLU_VC = 1336054025925169226
INCLU_VC = 1232496558042517534
STAFF_ROLE_ID = 4242

DEBOUNCE = 0.01


class FakePlatform:
    """In-memory Discord: voice channels, who is in them, and everything the bot did."""

    def __init__(self) -> None:
        self.templates: Dict[int, TemplateContext] = {}
        self.staff_roles: List[int] = [STAFF_ROLE_ID]
        self.members_in: Dict[int, Set[int]] = {}
        self.location: Dict[int, Optional[int]] = {}

        self.created: List[dict] = []
        self.grants: List[tuple] = []
        self.deleted: List[int] = []
        self.messages: List[tuple] = []
        self.dms: List[tuple] = []
        self.delete_calls = 0

        self.fail_create = False
        self.fail_move = False
        self.fail_send = False
        self.fail_dm = False
        self.fail_delete = False
        self.grant_failures = 0
        self._next_id = 9000

    # test helpers
    def add_template(self, channel_id: int, category_id: int = 77) -> None:
        self.templates[channel_id] = TemplateContext(category_id=category_id, user_limit=0, bitrate=64000)
        self.members_in.setdefault(channel_id, set())

    def place(self, member_id: int, channel_id: Optional[int]) -> None:
        current = self.location.get(member_id)
        if current is not None and current in self.members_in:
            self.members_in[current].discard(member_id)
        self.location[member_id] = channel_id
        if channel_id is not None:
            self.members_in.setdefault(channel_id, set()).add(member_id)

    def grants_for(self, channel_id: int) -> List[PermissionGrant]:
        return [g for cid, g in self.grants if cid == channel_id]

    # VoicePlatform
    async def resolve_template(self, guild_id: int, template_channel_id: int) -> TemplateContext:
        if template_channel_id not in self.templates:
            raise ChannelGone()
        return self.templates[template_channel_id]

    async def staff_role_ids(self, guild_id: int) -> List[int]:
        return list(self.staff_roles)

    async def create_voice_channel(self, guild_id, name, context, base_grants) -> int:
        if self.fail_create:
            raise ChannelCreationFailed()
        self._next_id += 1
        channel_id = self._next_id
        self.members_in[channel_id] = set()
        self.created.append(
            {"id": channel_id, "name": name, "context": context, "base_grants": list(base_grants)}
        )
        return channel_id

    async def delete_channel(self, channel_id: int) -> None:
        self.delete_calls += 1
        if channel_id not in self.members_in:
            raise ChannelGone()
        if self.fail_delete:
            raise DeletionFailed()
        del self.members_in[channel_id]
        self.deleted.append(channel_id)

    async def set_permission(self, channel_id: int, grant: PermissionGrant) -> None:
        if self.grant_failures > 0:
            self.grant_failures -= 1
            raise PermissionGrantFailed()
        self.grants.append((channel_id, grant))

    async def move_member(self, guild_id: int, member_id: int, channel_id: int) -> None:
        if self.fail_move or self.location.get(member_id) is None:
            raise MoveFailed()
        self.place(member_id, channel_id)

    async def list_members(self, channel_id: int) -> Set[int]:
        if channel_id not in self.members_in:
            raise ChannelGone()
        return set(self.members_in[channel_id])

    async def send_message(self, channel_id: int, content: str) -> None:
        if self.fail_send:
            raise NotificationFailed()
        self.messages.append((channel_id, content))

    async def direct_message(self, member_id: int, content: str) -> None:
        if self.fail_dm:
            raise NotificationFailed()
        self.dms.append((member_id, content))


class VoiceHarness:
    """Moves members around and feeds the resulting events to the provisioner."""

    def __init__(self, platform: FakePlatform, provisioner: VoiceProvisioner) -> None:
        self.platform = platform
        self.provisioner = provisioner

    async def move(self, member_id: int, name: str, channel_id: Optional[int], guild_id: int = GUILD_ID) -> None:
        before = self.platform.location.get(member_id)
        self.platform.place(member_id, channel_id)
        await self.provisioner.on_voice_state_changed(
            VoiceStateChanged(guild_id, member_id, name, before, channel_id)
        )

        # the bot may have moved them somewhere else; Discord reports that too
        after = self.platform.location.get(member_id)
        if after != channel_id:
            await self.provisioner.on_voice_state_changed(
                VoiceStateChanged(guild_id, member_id, name, channel_id, after)
            )

    async def settle(self) -> None:
        await self.provisioner.drain()


@pytest.fixture
def platform() -> FakePlatform:
    p = FakePlatform()
    p.add_template(EXCLU_VC)
    p.add_template(INCLU_VC)
    return p


@pytest.fixture
def store() -> ProvisionerStore:
    s = ProvisionerStore()
    s.add_template(TemplateChannelConfig(GUILD_ID, EXCLU_VC, is_private=True, channel_name="exclu-vc"))
    s.add_template(TemplateChannelConfig(GUILD_ID, INCLU_VC, is_private=False, channel_name="inclu-vc"))
    return s


@pytest.fixture
def provisioner(store, platform):
    p = VoiceProvisioner(store, platform, debounce_seconds=DEBOUNCE)
    yield p
    p.close()


@pytest.fixture
def voice(platform, provisioner) -> VoiceHarness:
    return VoiceHarness(platform, provisioner)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 12, 1, 12, 0, tzinfo=timezone.utc))

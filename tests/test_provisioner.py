import asyncio

from conftest import DEBOUNCE, EXCLU_VC, GUILD_ID, INCLU_VC, STAFF_ROLE_ID, VoiceHarness
from provisioner import (
    INVITEE_PERMS,
    NO_DRAG_PERMS,
    PRIVATE_EVERYONE_PERMS,
    PRIVATE_OWNER_PERMS,
    PUBLIC_OWNER_PERMS,
    STAFF_PERMS,
    PermissionGrant,
    VoiceProvisioner,
    VoiceStateChanged,
    channel_name_for,
)

ALICE, BOB, CARL = 101, 102, 103


def only_channel(platform) -> int:
    assert len(platform.created) == 1
    return platform.created[0]["id"]


# ── public templates ───────────────────────────────────────────────

async def test_public_template_lifecycle(voice, platform, store):
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)

    assert platform.created[0]["name"] == "Alice's Channel"
    assert platform.created[0]["base_grants"] == []
    assert platform.location[ALICE] == cid
    assert platform.grants_for(cid) == [PermissionGrant(ALICE, False, PUBLIC_OWNER_PERMS)]

    entry = store.get(cid)
    assert entry.owner_id == ALICE
    assert entry.parent_template_id == INCLU_VC
    assert not entry.is_private

    # a second member walks in; public channels need no grants
    await voice.move(BOB, "Bob", cid)
    assert platform.grants_for(cid) == [PermissionGrant(ALICE, False, PUBLIC_OWNER_PERMS)]

    await voice.move(ALICE, "Alice", None)
    await voice.settle()
    assert platform.deleted == []
    assert cid in store

    await voice.move(BOB, "Bob", None)
    await voice.settle()
    assert platform.deleted == [cid]
    assert cid not in store


async def test_spawned_channel_copies_template_context(voice, platform):
    await voice.move(ALICE, "Alice", INCLU_VC)
    assert platform.created[0]["context"] == platform.templates[INCLU_VC]


async def test_each_join_gets_its_own_channel(voice, platform, store):
    await voice.move(ALICE, "Alice", INCLU_VC)
    await voice.move(BOB, "Bob", INCLU_VC)

    ids = [c["id"] for c in platform.created]
    assert len(set(ids)) == 2
    assert {store.get(i).owner_id for i in ids} == {ALICE, BOB}


# ── private templates ──────────────────────────────────────────────

async def test_private_template_invite_lifecycle(voice, platform, store, provisioner):
    await voice.move(ALICE, "Alice", EXCLU_VC)
    cid = only_channel(platform)

    assert platform.created[0]["base_grants"] == [PermissionGrant(GUILD_ID, True, PRIVATE_EVERYONE_PERMS)]
    assert PRIVATE_EVERYONE_PERMS["connect"] is False
    assert PRIVATE_EVERYONE_PERMS["view_channel"] is True

    grants = platform.grants_for(cid)
    assert PermissionGrant(ALICE, False, PRIVATE_OWNER_PERMS) in grants
    assert PermissionGrant(STAFF_ROLE_ID, True, STAFF_PERMS) in grants
    for perm in ("connect", "speak", "manage_channels", "move_members"):
        assert PRIVATE_OWNER_PERMS[perm] is True

    assert provisioner.is_private(cid)
    assert provisioner.owner_of(cid) == ALICE

    assert len(platform.messages) == 1
    channel_id, text = platform.messages[0]
    assert channel_id == cid
    assert f"<@{ALICE}>" in text
    assert platform.dms == []

    # Alice drags Bob in
    platform.place(BOB, 555)
    await voice.move(BOB, "Bob", cid)
    assert PermissionGrant(BOB, False, INVITEE_PERMS) in platform.grants_for(cid)

    await voice.move(ALICE, "Alice", None)
    await voice.move(BOB, "Bob", None)
    await voice.settle()
    assert platform.deleted == [cid]
    assert len(store) == 0


async def test_owner_rejoining_private_channel_gets_no_invitee_grant(voice, platform):
    await voice.move(ALICE, "Alice", EXCLU_VC)
    cid = only_channel(platform)
    before = list(platform.grants_for(cid))

    await voice.move(ALICE, "Alice", 555)
    await voice.move(ALICE, "Alice", cid)
    assert platform.grants_for(cid) == before
    await voice.settle()
    assert cid in voice.provisioner.store


async def test_staff_grant_skips_everyone_role(voice, platform):
    platform.staff_roles = [GUILD_ID, STAFF_ROLE_ID]
    await voice.move(ALICE, "Alice", EXCLU_VC)
    cid = only_channel(platform)
    role_grants = [g for g in platform.grants_for(cid) if g.is_role]
    assert role_grants == [PermissionGrant(STAFF_ROLE_ID, True, STAFF_PERMS)]


NO_DRAG_ROLE_ID = 5151


async def test_no_drag_role_is_denied_on_private_channels(platform, store):
    provisioner = VoiceProvisioner(store, platform, debounce_seconds=DEBOUNCE, no_drag_role_id=NO_DRAG_ROLE_ID)
    voice = VoiceHarness(platform, provisioner)
    try:
        await voice.move(ALICE, "Alice", EXCLU_VC)
        private = platform.created[0]["id"]
        assert PermissionGrant(NO_DRAG_ROLE_ID, True, NO_DRAG_PERMS) in platform.grants_for(private)
        assert NO_DRAG_PERMS == {"view_channel": True, "connect": False, "move_members": False}

        await voice.move(BOB, "Bob", INCLU_VC)
        public = platform.created[1]["id"]
        assert all(g.subject_id != NO_DRAG_ROLE_ID for g in platform.grants_for(public))
    finally:
        provisioner.close()


async def test_no_drag_role_is_off_by_default(voice, platform):
    await voice.move(ALICE, "Alice", EXCLU_VC)
    cid = only_channel(platform)
    assert [g for g in platform.grants_for(cid) if g.is_role] == [PermissionGrant(STAFF_ROLE_ID, True, STAFF_PERMS)]


async def test_private_welcome_falls_back_to_dm(voice, platform):
    platform.fail_send = True
    await voice.move(ALICE, "Alice", EXCLU_VC)

    assert platform.messages == []
    assert len(platform.dms) == 1
    assert platform.dms[0][0] == ALICE


async def test_private_welcome_failure_is_not_fatal(voice, platform, store):
    platform.fail_send = True
    platform.fail_dm = True
    await voice.move(ALICE, "Alice", EXCLU_VC)

    cid = only_channel(platform)
    assert cid in store
    assert platform.location[ALICE] == cid


# ── reclaiming ─────────────────────────────────────────────────────

async def test_empty_channel_deleted_exactly_once(voice, platform, provisioner, store):
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)

    await voice.move(ALICE, "Alice", None)
    for _ in range(3):
        provisioner.schedule_emptiness_check(cid)
    await voice.settle()

    assert platform.delete_calls == 1
    assert platform.deleted == [cid]
    assert cid not in store
    assert provisioner.pending_checks(cid) == 0


async def test_concurrent_leave_events_delete_once(voice, platform, provisioner):
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)
    await voice.move(BOB, "Bob", cid)

    platform.place(ALICE, None)
    platform.place(BOB, None)
    await asyncio.gather(
        provisioner.on_voice_state_changed(VoiceStateChanged(GUILD_ID, ALICE, "Alice", cid, None)),
        provisioner.on_voice_state_changed(VoiceStateChanged(GUILD_ID, BOB, "Bob", cid, None)),
    )
    await voice.settle()
    assert platform.delete_calls == 1


async def test_rejoin_within_debounce_keeps_channel(voice, platform, store):
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)

    await voice.move(ALICE, "Alice", None)
    await voice.move(ALICE, "Alice", cid)
    await voice.settle()

    assert platform.deleted == []
    assert cid in store


async def test_deletion_failure_keeps_entry(voice, platform, store):
    platform.fail_delete = True
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)

    await voice.move(ALICE, "Alice", None)
    await voice.settle()
    assert cid in store

    # a later leave retries
    platform.fail_delete = False
    await voice.move(BOB, "Bob", cid)
    await voice.move(BOB, "Bob", None)
    await voice.settle()
    assert platform.deleted == [cid]
    assert cid not in store


async def test_manually_deleted_channel_is_forgotten(voice, platform, store):
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)

    platform.place(ALICE, None)
    del platform.members_in[cid]
    await voice.provisioner.on_voice_state_changed(VoiceStateChanged(GUILD_ID, ALICE, "Alice", cid, None))
    await voice.settle()

    assert cid not in store
    assert platform.deleted == []


async def test_forget_channel(voice, platform, provisioner):
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)

    assert provisioner.forget_channel(cid).owner_id == ALICE
    assert not provisioner.is_managed(cid)
    assert provisioner.forget_channel(cid) is None


async def test_leaving_unmanaged_channel_schedules_nothing(voice, provisioner):
    await voice.move(ALICE, "Alice", 555)
    await voice.move(ALICE, "Alice", None)
    assert provisioner.pending_checks(555) == 0


# ── collaborator failures ──────────────────────────────────────────

async def test_grant_retried_once(voice, platform):
    platform.grant_failures = 1
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)
    assert platform.grants_for(cid) == [PermissionGrant(ALICE, False, PUBLIC_OWNER_PERMS)]


async def test_grant_gives_up_after_second_failure(voice, platform, store):
    platform.grant_failures = 2
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)

    assert platform.grants_for(cid) == []
    assert cid in store
    assert platform.location[ALICE] == cid


async def test_move_failure_reclaims_channel(voice, platform, store):
    platform.fail_move = True
    await voice.move(ALICE, "Alice", INCLU_VC)
    cid = only_channel(platform)

    assert platform.location[ALICE] == INCLU_VC
    await voice.settle()
    assert platform.deleted == [cid]
    assert len(store) == 0


async def test_creation_failure_registers_nothing(voice, platform, store):
    platform.fail_create = True
    await voice.move(ALICE, "Alice", EXCLU_VC)

    assert platform.created == []
    assert platform.grants == []
    assert platform.messages == []
    assert len(store) == 0
    assert platform.location[ALICE] == EXCLU_VC


async def test_missing_template_channel_is_skipped(voice, platform, store):
    del platform.templates[INCLU_VC]
    await voice.move(ALICE, "Alice", INCLU_VC)
    assert platform.created == []
    assert len(store) == 0


# ── event filtering ────────────────────────────────────────────────

async def test_unchanged_channel_is_ignored(provisioner, platform):
    await provisioner.on_voice_state_changed(VoiceStateChanged(GUILD_ID, ALICE, "Alice", INCLU_VC, INCLU_VC))
    assert platform.created == []


async def test_template_from_another_guild_is_ignored(voice, platform):
    await voice.move(ALICE, "Alice", INCLU_VC, guild_id=GUILD_ID + 1)
    assert platform.created == []


def test_channel_name_for():
    assert channel_name_for("Alice") == "Alice's Channel"
    assert channel_name_for("   ") == "Someone's Channel"
    assert len(channel_name_for("x" * 300)) == 100

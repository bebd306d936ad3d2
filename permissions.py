# permissions.py
from __future__ import annotations

from typing import Callable, Iterable, TypeVar

import discord
from discord import app_commands

import config

T = TypeVar("T")


def clean_role_name(name: str) -> str:
    """Strip the decorative prefix some self-assign roles carry."""
    name = name.strip()
    if name.startswith(config.ROLE_NAME_PREFIX):
        name = name[len(config.ROLE_NAME_PREFIX):]
    return name.strip()


def has_any_role(member: discord.Member, role_names: Iterable[str]) -> bool:
    """Return True if the member has at least one of the given role names."""
    member_role_names = {r.name for r in member.roles}
    return any(name in member_role_names for name in role_names)


def role_is_staff(role: discord.Role) -> bool:
    """Roles that keep oversight of private voice channels."""
    perms = role.permissions
    return perms.administrator or perms.manage_guild or perms.manage_channels


def is_admin_member(member: discord.Member) -> bool:
    """Server administrators (raffles, join-to-create setup, media gating)."""
    return member.guild_permissions.administrator


def is_mod_member(member: discord.Member) -> bool:
    """
    Shared 'mod' check for the whole bot.

    A member counts as mod if:
    - They have key moderation permissions, OR
    - They have one of the ADMIN_ROLE_NAMES from config.
    """
    perms = member.guild_permissions
    if (
        perms.administrator
        or perms.manage_guild
        or perms.manage_messages
        or perms.kick_members
        or perms.ban_members
    ):
        return True

    return has_any_role(member, config.ADMIN_ROLE_NAMES)


# ─────────────────────────────────────────────
# Decorators for slash commands
# ─────────────────────────────────────────────

def _member_check(predicate: Callable[[discord.Member], bool], denied: str) -> Callable[[T], T]:
    def check(interaction: discord.Interaction) -> bool:
        user = interaction.user
        if not isinstance(user, discord.Member):
            raise app_commands.CheckFailure("This command can only be used in a server.")

        if predicate(user):
            return True

        raise app_commands.CheckFailure(denied)

    return app_commands.check(check)


def mod_slash_only() -> Callable[[T], T]:
    """
    Use on slash commands that should be mod-only:

        @app_commands.command(...)
        @mod_slash_only()
        async def mycmd(...):
            ...
    """
    return _member_check(is_mod_member, "You do not have permission to use this command.")


def admin_slash_only() -> Callable[[T], T]:
    """Like mod_slash_only, but requires the Administrator permission."""
    return _member_check(is_admin_member, "You need Administrator permissions to use this command.")

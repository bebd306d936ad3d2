import logging
from typing import Dict, Iterable, Set, Tuple

import discord
from discord.ext import commands
from discord import app_commands

import config
import permissions
from config import RoleMenu

LOG = logging.getLogger(__name__)


def _norm(name: str) -> str:
    return permissions.clean_role_name(name).lower()


def plan_role_changes(
    menu_roles: Iterable[str],
    current_roles: Iterable[str],
    selected: Iterable[str],
) -> Tuple[Set[str], Set[str]]:
    """
    Work out which of a menu's roles to add and remove.

    Everything is compared by cleaned, lower-cased name, so "ᴗ• Luzon" and
    "Luzon" are the same role. Roles outside the menu are never touched.
    Returns (to_add, to_remove) as normalized names.
    """
    menu = {_norm(n) for n in menu_roles}
    have = {_norm(n) for n in current_roles} & menu
    want = {_norm(n) for n in selected} & menu
    return want - have, have - want


def _roles_by_name(guild: discord.Guild) -> Dict[str, discord.Role]:
    return {_norm(r.name): r for r in guild.roles if not r.is_default()}


# ── Select components ──────────────────────────────────────────────
class RoleMenuSelect(discord.ui.Select):
    def __init__(self, menu: RoleMenu):
        options = [
            discord.SelectOption(label=name, value=name)
            for name in menu.role_names
        ]
        super().__init__(
            placeholder=menu.placeholder,
            min_values=0,
            max_values=min(menu.max_values, len(options)),
            options=options,
            custom_id=f"role_menu:{menu.category}",  # fixed ID for persistent view
        )
        self.menu = menu

    async def callback(self, interaction: discord.Interaction):
        member = interaction.user
        if not isinstance(member, discord.Member):
            await interaction.response.send_message(
                "This can only be used inside the server.", ephemeral=True
            )
            return

        to_add, to_remove = plan_role_changes(
            self.menu.role_names,
            (r.name for r in member.roles),
            self.values,
        )

        by_name = _roles_by_name(member.guild)
        add_roles = [by_name[n] for n in to_add if n in by_name]
        remove_roles = [by_name[n] for n in to_remove if n in by_name]
        missing = sorted(n for n in to_add if n not in by_name)
        if missing:
            LOG.warning("Role menu %s: roles not found in guild: %s", self.menu.category, ", ".join(missing))

        try:
            if remove_roles:
                await member.remove_roles(*remove_roles, reason=f"Role menu: {self.menu.category}")
            if add_roles:
                await member.add_roles(*add_roles, reason=f"Role menu: {self.menu.category}")
        except discord.Forbidden:
            await interaction.response.send_message(
                "I don’t have permission to change your roles.", ephemeral=True
            )
            return
        except discord.HTTPException:
            LOG.exception("Failed to update %s roles for %s", self.menu.category, member.id)
            await interaction.response.send_message(
                "Something went wrong while updating your roles.", ephemeral=True
            )
            return

        if not add_roles and not remove_roles:
            text = "No changes to your roles."
        else:
            parts = []
            if add_roles:
                parts.append("added " + ", ".join(f"**{r.name}**" for r in add_roles))
            if remove_roles:
                parts.append("removed " + ", ".join(f"**{r.name}**" for r in remove_roles))
            text = "Roles updated: " + "; ".join(parts) + "."
        await interaction.response.send_message(text, ephemeral=True)


class RoleMenuView(discord.ui.View):
    def __init__(self, menu: RoleMenu):
        # timeout=None + fixed custom_id on the Select → persistent view
        super().__init__(timeout=None)
        self.add_item(RoleMenuSelect(menu))


def menu_embed(menu: RoleMenu) -> discord.Embed:
    pick = "one" if menu.max_values == 1 else f"up to {menu.max_values}"
    return discord.Embed(
        title=menu.title,
        description=f"Pick {pick} below. Clear the selection to drop these roles.",
        color=0x5865F2,
    )


# ── Cog ────────────────────────────────────────────────────────────
class RolePicker(commands.Cog):
    """Self-assign role menus driven by config.ROLE_MENUS."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    async def cog_load(self):
        # Register the persistent views so selects keep working
        # after reloads/restarts.
        for menu in config.ROLE_MENUS:
            self.bot.add_view(RoleMenuView(menu))

    # ── Slash: post role menus ─────────────────────────────────────
    @app_commands.command(
        name="post-roles",
        description="Post the self-assign role menus in this channel."
    )
    @app_commands.guild_only()
    @permissions.mod_slash_only()
    async def post_roles(self, interaction: discord.Interaction):
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            return await interaction.response.send_message(
                "This command must be used in a text channel.", ephemeral=True
            )

        await interaction.response.defer(ephemeral=True, thinking=False)

        try:
            for menu in config.ROLE_MENUS:
                await channel.send(embed=menu_embed(menu), view=RoleMenuView(menu))
        except discord.HTTPException:
            LOG.exception("Failed to post role menus in #%s", channel.name)
            return await interaction.followup.send(
                "I couldn’t post all the role menus here. Check my permissions.", ephemeral=True
            )

        await interaction.followup.send("Role menus posted.", ephemeral=True)


async def setup(bot: commands.Bot):
    await bot.add_cog(RolePicker(bot))

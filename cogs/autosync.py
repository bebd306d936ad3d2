# cogs/autosync.py
import logging
import pkgutil
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

import permissions

LOG = logging.getLogger(__name__)

COGS_PACKAGE = "cogs"
SELF_MODULE = f"{COGS_PACKAGE}.autosync"


def discover_cog_modules() -> List[str]:
    """Every module under cogs/ except this one and private (_x) modules, sorted."""
    pkg = __import__(COGS_PACKAGE, fromlist=["*"])
    modules = [
        f"{COGS_PACKAGE}.{mod.name}"
        for mod in pkgutil.iter_modules(pkg.__path__)  # type: ignore[attr-defined]
        if not mod.name.startswith("_")
    ]
    return sorted(m for m in modules if m != SELF_MODULE)


def to_module_path(name_or_module: str) -> str:
    name_or_module = name_or_module.strip()
    return name_or_module if name_or_module.startswith(f"{COGS_PACKAGE}.") else f"{COGS_PACKAGE}.{name_or_module}"


class AutoSync(commands.Cog):
    """Loads every cog on startup, keeps slash commands synced; /reload and /sync."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._discovered = discover_cog_modules()
        LOG.info("Discovered cogs: %s", self._discovered)

    @property
    def guild_id(self) -> Optional[int]:
        gid = getattr(self.bot, "GUILD_ID", None)
        return int(gid) if gid else None

    async def _sync(self, scope: str = "guild") -> int:
        """
        Push the command tree to Discord and return how many commands were synced.

        Guild scope copies the global commands into the guild and clears the
        global set, so nothing shows up twice in the client.
        """
        if scope == "guild" and self.guild_id:
            guild_obj = discord.Object(id=self.guild_id)
            self.bot.tree.copy_global_to(guild=guild_obj)
            self.bot.tree.clear_commands(guild=None)
            try:
                await self.bot.tree.sync()
                LOG.info("Purged global commands.")
            except discord.HTTPException:
                # Guild sync still works without this; stale globals just linger
                LOG.exception("Failed to purge global commands")

            cmds = await self.bot.tree.sync(guild=guild_obj)
            LOG.info("Synced %d commands to guild %s.", len(cmds), self.guild_id)
            return len(cmds)

        cmds = await self.bot.tree.sync()
        LOG.info("Synced %d commands globally.", len(cmds))
        return len(cmds)

    async def cog_load(self):
        for module in self._discovered:
            if module in self.bot.extensions:
                continue
            try:
                await self.bot.load_extension(module)
                LOG.info("Loaded extension: %s", module)
            except Exception:
                LOG.exception("Failed to load extension: %s", module)

        try:
            await self._sync("guild")
        except discord.HTTPException:
            LOG.exception("Initial command sync failed")

    # /reload
    @app_commands.command(name="reload", description="Reload a cog by name (e.g. raffle).")
    @app_commands.describe(cog="Cog module name (e.g. voice_channels)")
    @permissions.admin_slash_only()
    async def reload(self, interaction: discord.Interaction, cog: str):
        await interaction.response.defer(ephemeral=True)
        module = to_module_path(cog)
        if module == SELF_MODULE or module not in self._discovered:
            await interaction.followup.send(f"Unknown cog `{cog}`.", ephemeral=True)
            return

        try:
            if module in self.bot.extensions:
                await self.bot.reload_extension(module)
            else:
                await self.bot.load_extension(module)
        except commands.ExtensionError as e:
            LOG.exception("Reload failed for %s", module)
            await interaction.followup.send(f"Reload failed for `{module}`: `{e}`", ephemeral=True)
            return

        LOG.info("Reloaded extension: %s", module)
        await interaction.followup.send(f"Reloaded: `{module}` ✅", ephemeral=True)

    @reload.autocomplete("cog")
    async def reload_autocomplete(self, interaction: discord.Interaction, current: str):
        cur = (current or "").lower()
        bare_names = [m.split(".", 1)[1] for m in self._discovered]
        return [
            app_commands.Choice(name=bare, value=bare)
            for bare in bare_names
            if not cur or cur in bare.lower()
        ][:20]

    # /sync
    @app_commands.command(name="sync", description="Sync slash commands (guild or global).")
    @app_commands.choices(
        scope=[
            app_commands.Choice(name="guild (no dupes)", value="guild"),
            app_commands.Choice(name="global (slow)", value="global"),
        ]
    )
    @permissions.admin_slash_only()
    async def sync(self, interaction: discord.Interaction, scope: app_commands.Choice[str]):
        await interaction.response.defer(ephemeral=True)
        if scope.value == "guild" and not self.guild_id:
            await interaction.followup.send(
                "GUILD_ID is not set. Set it in config.py for guild sync.",
                ephemeral=True,
            )
            return

        try:
            count = await self._sync(scope.value)
        except discord.HTTPException as e:
            LOG.exception("Sync failed")
            await interaction.followup.send(f"Sync failed: `{e}`", ephemeral=True)
            return

        where = f"guild `{self.guild_id}`" if scope.value == "guild" else "globally"
        await interaction.followup.send(f"Synced **{count}** commands {where} ✅", ephemeral=True)


async def setup(bot: commands.Bot):
    await bot.add_cog(AutoSync(bot))

# cogs/help_catalog.py
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

import discord
from discord.ext import commands
from discord import app_commands

LOG = logging.getLogger(__name__)

HELP_COLOUR = 0x5865F2


# ── helpers ─────────────────────────────────────────────────────────

def _safe(text: Optional[str]) -> str:
    if not text:
        return "—"
    s = " ".join(text.strip().split())
    return s or "—"


def _chunk_text(lines: List[str], max_chars: int = 3900) -> List[str]:
    """Split into chunks under ~4k to fit embed description comfortably."""
    chunks: List[str] = []
    buf: List[str] = []
    length = 0
    for line in lines:
        ln = len(line) + 1
        if buf and length + ln > max_chars:
            chunks.append("\n".join(buf))
            buf = [line]
            length = len(line)
        else:
            buf.append(line)
            length += ln
    if buf:
        chunks.append("\n".join(buf))
    return chunks


def _section_title(module: Optional[str]) -> str:
    if not module or not module.startswith("cogs."):
        return "General"
    # 'cogs.voice_channels' → 'Voice Channels'
    pretty = module.replace("cogs.", "").replace("_", " ").strip()
    return pretty.title() or "General"


def _walk_slash(tree: app_commands.CommandTree, guild_id: Optional[int] = None) -> Iterable[app_commands.Command]:
    """Yield every slash command (global and guild copies, once each), flattening groups."""
    def expand(c):
        if isinstance(c, app_commands.Group):
            for child in c.commands:
                yield from expand(child)
        elif isinstance(c, app_commands.Command):
            yield c

    top = list(tree.get_commands())
    if guild_id:
        # autosync moves everything into the guild and clears the global set
        top += tree.get_commands(guild=discord.Object(id=guild_id))

    seen = set()
    for c in top:
        for cmd in expand(c):
            if cmd.qualified_name not in seen:
                seen.add(cmd.qualified_name)
                yield cmd


def _usage(cmd: app_commands.Command) -> str:
    parts = [f"/{cmd.qualified_name}"]
    for p in cmd.parameters:
        parts.append(f"{p.display_name}:<{p.display_name}>" if p.required else f"[{p.display_name}]")
    return " ".join(parts)


def group_commands(
    commands_: Iterable[app_commands.Command],
) -> Dict[str, List[Tuple[str, str]]]:
    """Map section title -> sorted (/name, description) rows."""
    grouped: Dict[str, List[Tuple[str, str]]] = defaultdict(list)
    for c in commands_:
        grouped[_section_title(getattr(c.callback, "__module__", None))].append(
            (f"/{c.qualified_name}", _safe(c.description))
        )
    return {k: sorted(v) for k, v in sorted(grouped.items())}


# ── main cog ────────────────────────────────────────────────────────

class HelpCatalog(commands.Cog):
    """
    /help: every slash command grouped by the cog that defines it,
    or the usage and options of one command.
    """

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    def _all_commands(self) -> List[app_commands.Command]:
        return list(_walk_slash(self.bot.tree, getattr(self.bot, "GUILD_ID", None)))

    def _find(self, name: str) -> Optional[app_commands.Command]:
        name = name.strip().lstrip("/").lower()
        for c in self._all_commands():
            if c.qualified_name.lower() == name:
                return c
        return None

    # --------- rendering

    def build_catalog(self) -> List[discord.Embed]:
        grouped = group_commands(self._all_commands())
        if not grouped:
            return [discord.Embed(title="Command catalog", description="No commands registered.", color=HELP_COLOUR)]

        lines: List[str] = []
        for section, rows in grouped.items():
            lines.append(f"__**{section}**__")
            lines.extend(f"• `{disp}` {desc}" for disp, desc in rows)
            lines.append("")

        embeds: List[discord.Embed] = []
        for i, chunk in enumerate(_chunk_text(lines)):
            em = discord.Embed(
                title="Command catalog" if i == 0 else f"Command catalog (page {i+1})",
                description=chunk,
                color=HELP_COLOUR,
            )
            embeds.append(em)
        embeds[-1].set_footer(text="Use /help command:<name> for details on one command.")
        return embeds

    def build_detail(self, cmd: app_commands.Command) -> discord.Embed:
        em = discord.Embed(
            title=f"/{cmd.qualified_name}",
            description=_safe(cmd.description),
            color=HELP_COLOUR,
        )
        em.add_field(name="Usage", value=f"`{_usage(cmd)}`", inline=False)
        if cmd.parameters:
            em.add_field(
                name="Options",
                value="\n".join(
                    f"• **{p.display_name}**{'' if p.required else ' (optional)'}: {_safe(p.description)}"
                    for p in cmd.parameters
                ),
                inline=False,
            )
        return em

    # --------- command

    @app_commands.command(
        name="help",
        description="Show every command, or details for one.",
    )
    @app_commands.describe(command="Command name, e.g. raffle")
    async def help_cmd(self, interaction: discord.Interaction, command: Optional[str] = None) -> None:
        if command:
            cmd = self._find(command)
            if cmd is None:
                await interaction.response.send_message(
                    f"No command named `/{command.strip().lstrip('/')}`.", ephemeral=True
                )
                return
            await interaction.response.send_message(embed=self.build_detail(cmd), ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        for em in self.build_catalog():
            await interaction.followup.send(embed=em, ephemeral=True)

    @help_cmd.autocomplete("command")
    async def help_autocomplete(self, interaction: discord.Interaction, current: str):
        cur = (current or "").lower().lstrip("/")
        names = sorted(c.qualified_name for c in self._all_commands())
        return [app_commands.Choice(name=f"/{n}", value=n) for n in names if cur in n.lower()][:25]


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(HelpCatalog(bot))

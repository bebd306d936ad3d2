# cogs/tagay.py
# Drinking-circle games for voice hangouts:
#   /tagay         – pick whose turn it is from a voice channel
#   /tagay-topics  – a random conversation starter

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence, TypeVar

import discord
from discord import app_commands
from discord.ext import commands

LOG = logging.getLogger(__name__)

TOPIC_COLOUR = 0x6E8878

M = TypeVar("M")

TAGAY_MESSAGES = (
    "{member}, ikaw na. Sagot mo na ang susunod na chika.",
    "{member}, your turn! Kwento mo naman.",
    "{member}, tagay! Share mo naman ang story mo.",
    "{member}, ito na turn mo. Anong kwento mo?",
    "{member}, time to spill the tea! Kwento mo na.",
)

TAGAY_TOPICS = (
    # Childhood and growing up
    "Share your favorite childhood memory from the Philippines.",
    "What's the most memorable family gathering you've attended?",
    "Tell us about a traditional Filipino dish your lola/lolo used to make.",
    "What's your favorite Filipino childhood game or activity?",
    "Describe the most memorable fiesta in your hometown.",
    # Culture and traditions
    "What Filipino tradition do you miss the most while abroad?",
    "Share a funny or embarrassing moment during a Filipino celebration.",
    "What's the best advice your Filipino parent/grandparent gave you?",
    "Tell us about a superstition your family believes in.",
    "What's your favorite Filipino saying or expression and why?",
    # Food and family
    "Describe the perfect Filipino comfort food for you.",
    "Share a story about learning to cook a Filipino dish.",
    "What's the funniest thing that happened during a family videoke session?",
    "Tell us about a time when Filipino hospitality surprised someone.",
    "What Filipino snack always reminds you of home?",
    # Community
    "Share how you met your closest Filipino friend abroad.",
    "Tell us about a time the Filipino community helped you.",
    "What's the most 'Filipino' thing you've done while living abroad?",
    "Describe a moment when you felt proud to be Filipino.",
    "Share a story about introducing Filipino culture to a non-Filipino friend.",
    # Life abroad
    "What was your biggest culture shock when you first moved abroad?",
    "Tell us about a time you had to explain something Filipino to foreigners.",
    "Share your funniest 'lost in translation' moment.",
    "What aspect of Filipino culture do you want to pass on to the next generation?",
    "Describe a moment when you realized how much you've changed since moving abroad.",
    # Dreams
    "If you could bring one thing from the Philippines to your current country, what would it be?",
    "Share your dream of how you want to contribute to the Filipino community.",
    "Tell us about a Filipino role model who inspires you.",
    "What's one thing you want to accomplish before you visit the Philippines again?",
    "If you could have dinner with any Filipino celebrity or historical figure, who would it be and why?",
)


def pick_tagay(members: Sequence[M], rng: random.Random) -> Optional[M]:
    """Random non-bot member, or None if only bots (or nobody) are there."""
    humans = [m for m in members if not getattr(m, "bot", False)]
    if not humans:
        return None
    return rng.choice(humans)


def tagay_message(mention: str, rng: random.Random) -> str:
    return rng.choice(TAGAY_MESSAGES).format(member=mention)


def topic_embed(topic: str) -> discord.Embed:
    embed = discord.Embed(
        title="🍻 Tagay Topics",
        description=f"**Conversation Starter:**\n\n*{topic}*",
        colour=TOPIC_COLOUR,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_footer(text="Use /tagay-topics again for a new topic!")
    return embed


class Tagay(commands.Cog):
    """Tagay turn picker and conversation topics."""

    def __init__(self, bot: commands.Bot, rng: Optional[random.Random] = None) -> None:
        self.bot = bot
        self.rng = rng or random.Random()

    @app_commands.command(name="tagay", description="Randomly pick whose turn it is in a voice channel")
    @app_commands.describe(channel="Voice channel to pick from")
    @app_commands.guild_only()
    async def tagay(self, interaction: discord.Interaction, channel: discord.VoiceChannel) -> None:
        member = pick_tagay(channel.members, self.rng)
        if member is None:
            await interaction.response.send_message(
                f"No one is currently in {channel.name}.", ephemeral=True
            )
            return

        await interaction.response.send_message(tagay_message(member.mention, self.rng))
        LOG.info("Tagay by %s in %s picked %s", interaction.user.id, channel.id, member.id)

    @app_commands.command(name="tagay-topics", description="Get a random conversation starter")
    async def tagay_topics(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(embed=topic_embed(self.rng.choice(TAGAY_TOPICS)))


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(Tagay(bot))

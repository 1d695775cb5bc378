"""
bot/commands.py
Commands: ping and latency work as slash or prefix commands,
/status and /ask are slash only.
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from follow.state import FollowState

if TYPE_CHECKING:
    from main import CastBot

log = logging.getLogger("castbot.commands")


def describe_state(state: FollowState) -> str:
    """Human-readable summary of the follow state for /status."""
    channel = f"<#{state.connected_channel}>" if state.connected_channel else "not connected"
    user    = f"<#{state.user_channel}>" if state.user_channel else "not in voice"
    cast    = "on" if state.cast_enabled else "off"
    return (
        f"**Voice:** {channel}\n"
        f"**Tracked user:** {user}\n"
        f"**Spotify device:** {cast}\n"
        f"**Playback:** {state.playback}"
    )


class GeneralCommands(commands.Cog):
    def __init__(self, bot: "CastBot"):
        self.bot = bot

    @commands.hybrid_command(name="ping", description="Check that the bot is alive")
    async def ping(self, ctx: commands.Context) -> None:
        await ctx.send("Pong!")

    @commands.hybrid_command(name="latency", description="Show the message round-trip latency")
    async def latency(self, ctx: commands.Context) -> None:
        created = ctx.interaction.created_at if ctx.interaction else ctx.message.created_at
        delay = (discord.utils.utcnow() - created).total_seconds() * 1000
        await ctx.send(
            f"The latency is {delay:.0f}ms (gateway {self.bot.latency * 1000:.0f}ms)"
        )

    @app_commands.command(name="status", description="Show what the bot is following and playing")
    async def status(self, interaction: discord.Interaction) -> None:
        follow = self.bot.follow
        if follow is None:
            await interaction.response.send_message("Not following anyone yet.", ephemeral=True)
            return
        await interaction.response.send_message(describe_state(follow.state), ephemeral=True)

    @app_commands.command(name="ask", description="Ask the assistant a question")
    @app_commands.describe(question="What do you want to know?")
    async def ask(self, interaction: discord.Interaction, question: str) -> None:
        assistant = self.bot.assistant
        if not assistant.enabled:
            await interaction.response.send_message(
                "The assistant is not configured.", ephemeral=True
            )
            return

        # Defer immediately because the completion can be slow
        await interaction.response.defer()
        answer = await assistant.ask(question)
        await interaction.followup.send(answer)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(GeneralCommands(bot))

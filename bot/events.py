"""
bot/events.py
Discord event handlers: on_ready picks the guild and starts following,
on_voice_state_update feeds voice changes into the follow core,
on_message logs what the prefix command parser sees.
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord.ext import commands

from errors import ConfigurationError
from follow.service import FollowService

if TYPE_CHECKING:
    from main import CastBot

log = logging.getLogger("castbot.events")


def select_guild(client: discord.Client, user_id: int, guild_id: Optional[int]) -> discord.Guild:
    """
    Pick the guild to operate in: the configured one, or else the first
    guild whose member cache holds the tracked user.
    """
    if guild_id is not None:
        guild = client.get_guild(guild_id)
        if guild is None:
            raise ConfigurationError(f"Bot is not a member of guild {guild_id}.")
        return guild

    for guild in client.guilds:
        if guild.get_member(user_id) is not None:
            return guild
    raise ConfigurationError(f"No guild shared with user {user_id}.")


def current_channel(guild: discord.Guild, user_id: int) -> Optional[int]:
    member = guild.get_member(user_id)
    if member is None or member.voice is None or member.voice.channel is None:
        return None
    return member.voice.channel.id


class FollowEvents(commands.Cog):
    def __init__(self, bot: "CastBot"):
        self.bot = bot

    # ────────────────────────────────────────
    # on_ready
    # ────────────────────────────────────────

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        log.info("Bot logged in as %s (ID: %s)", self.bot.user, self.bot.user.id)
        if self.bot.follow is not None:
            # Gateway resumed; the follow core keeps running.
            return

        config = self.bot.config
        try:
            guild = select_guild(self.bot, config.tracked_user_id, config.guild_id)
        except ConfigurationError as e:
            log.error("%s", e)
            self.bot.fatal_error = e
            await self.bot.close()
            return

        log.info("Operating in guild %s (%s).", guild.name, guild.id)
        follow = FollowService(
            user_id=config.tracked_user_id,
            guild_id=guild.id,
            voice=self.bot.voice_manager,
            presence=self.bot.presence,
            session=self.bot.session,
        )
        self.bot.follow = follow
        follow.start(current_channel(guild, config.tracked_user_id))

        try:
            synced = await self.bot.tree.sync()
            log.info("Synced %d slash commands.", len(synced))
        except discord.HTTPException as e:
            log.error("Failed to sync slash commands: %s", e)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        log.debug("msg content %r", message.content)

    # ────────────────────────────────────────
    # Voice state
    # ────────────────────────────────────────

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        follow = self.bot.follow
        if follow is None or member.guild.id != follow.guild_id:
            return

        previous = before.channel.id if before.channel else None
        new      = after.channel.id if after.channel else None

        if self.bot.user is not None and member.id == self.bot.user.id:
            if previous is not None and new is None:
                follow.on_own_connection_dropped(previous)
            return

        follow.on_voice_state_changed(member.id, previous, new)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(FollowEvents(bot))

"""
bot/presence.py
Sets the bot's activity and status. Fire-and-forget: a failed update is
logged and simply superseded by the next one.
"""

from __future__ import annotations
import logging
from typing import Optional

import discord

from playback.events import TrackInfo

log = logging.getLogger("castbot.presence")


class PresencePublisher:
    def __init__(self, client: discord.Client):
        self.client = client

    async def publish(
        self, activity: Optional[discord.BaseActivity], status: discord.Status
    ) -> None:
        try:
            await self.client.change_presence(activity=activity, status=status)
        except (discord.DiscordException, OSError) as e:
            log.warning("Presence update failed: %s", e)

    async def show_track(self, info: TrackInfo) -> None:
        activity = discord.Activity(type=discord.ActivityType.listening, name=str(info))
        await self.publish(activity, discord.Status.online)

    async def clear(self) -> None:
        await self.publish(None, discord.Status.online)

    async def go_offline(self) -> None:
        await self.publish(None, discord.Status.invisible)

"""
bot/voice.py
Joins, moves and leaves voice channels and hands the Spotify PCM stream to
the voice client. Keeps at most one connection per guild: join() always
releases the old one first.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Optional

import discord

from errors import TransportFailure

log = logging.getLogger("castbot.voice")

_TRANSPORT_ERRORS = (
    discord.ClientException,
    discord.HTTPException,
    discord.errors.ConnectionClosed,
    asyncio.TimeoutError,
    OSError,
)


class VoiceConnectionManager:
    """Owns the bot's voice clients, one per guild."""

    CONNECT_TIMEOUT = 30.0

    def __init__(self, client: discord.Client):
        self.client = client
        self._connections: dict[int, discord.VoiceClient] = {}

    # ──────────────────────────────────────────
    # Connection management
    # ──────────────────────────────────────────

    def _voice_channel(self, guild_id: int, channel_id: int) -> discord.VoiceChannel:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            raise TransportFailure(f"Guild {guild_id} is not in the cache.")
        channel = guild.get_channel(channel_id)
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            raise TransportFailure(f"Channel {channel_id} is not a voice channel.")
        return channel

    def connection(self, guild_id: int) -> Optional[discord.VoiceClient]:
        return self._connections.get(guild_id)

    def is_connected(self, guild_id: int) -> bool:
        vc = self._connections.get(guild_id)
        return vc is not None and vc.is_connected()

    def is_playing(self, guild_id: int) -> bool:
        vc = self._connections.get(guild_id)
        return vc is not None and vc.is_connected() and vc.is_playing()

    async def join(self, guild_id: int, channel_id: int) -> discord.VoiceClient:
        """Connect to a voice channel, replacing any connection in that guild."""
        channel = self._voice_channel(guild_id, channel_id)

        # Ensure clean slate first
        await self.leave(guild_id)

        try:
            vc = await channel.connect(
                timeout=self.CONNECT_TIMEOUT, reconnect=True, self_deaf=True
            )
        except _TRANSPORT_ERRORS as e:
            raise TransportFailure(f"Failed to join {channel.name}: {e}") from e

        self._connections[guild_id] = vc
        log.info("Connected to voice channel: %s", channel.name)
        return vc

    async def move(self, guild_id: int, channel_id: int) -> None:
        vc = self._connections.get(guild_id)
        if vc is None:
            raise TransportFailure(f"No voice connection in guild {guild_id} to move.")
        channel = self._voice_channel(guild_id, channel_id)

        try:
            await vc.move_to(channel)
        except _TRANSPORT_ERRORS as e:
            raise TransportFailure(f"Failed to move to {channel.name}: {e}") from e
        log.info("Moved to voice channel: %s", channel.name)

    async def leave(self, guild_id: int) -> None:
        """Disconnect from voice in the guild. No-op when not connected."""
        vc = self._connections.get(guild_id)
        if vc is None:
            return

        if vc.is_playing():
            vc.stop()
        try:
            await vc.disconnect(force=True)
        except _TRANSPORT_ERRORS as e:
            # Keep the client so the next leave() retries it
            raise TransportFailure(f"Failed to disconnect: {e}") from e
        self._connections.pop(guild_id, None)
        log.info("Disconnected from voice channel.")

    async def leave_all(self) -> None:
        for guild_id in list(self._connections):
            try:
                await self.leave(guild_id)
            except TransportFailure as e:
                log.warning("Failed to clean up voice in guild %s: %s", guild_id, e)

    # ──────────────────────────────────────────
    # Audio
    # ──────────────────────────────────────────

    def attach_source(self, vc: discord.VoiceClient, source: discord.AudioSource) -> None:
        """Start streaming `source` on `vc`, replacing whatever is playing."""
        if not vc.is_connected():
            source.cleanup()
            raise TransportFailure("Cannot play, voice client is not connected.")

        def after_play(error: Optional[Exception]) -> None:
            if error:
                log.error("Playback error: %s", error)
            else:
                log.debug("Audio source finished.")

        if vc.is_playing():
            vc.stop()
        try:
            vc.play(source, after=after_play)
        except discord.ClientException as e:
            source.cleanup()
            raise TransportFailure(f"Failed to start audio: {e}") from e

"""
follow/machine.py
The follow state machine.

Consumes voice transitions (from the tracker) and playback events (from the
Spotify session) and drives the voice connection and the bot's presence so
that both converge on what the tracked user and the player are doing.

Every input goes through one asyncio.Queue and is applied by a single
consumer (run()), one at a time and in arrival order. FollowState is
immutable and swapped whole, so `state` always returns a consistent
snapshot. Transport / metadata / cast failures are logged and leave the
corresponding part of the state untouched; the next real event
re-synchronises.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Optional

from errors import CastControlFailure, MetadataFailure, TransportFailure
from playback.events import Paused, Playing, Started, Stopped
from .state import (
    ChannelId,
    FollowState,
    Joined,
    Left,
    Moved,
    PlaybackState,
    TransportLost,
)

if TYPE_CHECKING:
    import discord
    from bot.presence import PresencePublisher
    from bot.voice import VoiceConnectionManager
    from playback.session import LibrespotSession

log = logging.getLogger("castbot.follow")


@dataclass(frozen=True)
class Shutdown:
    """Final input: release the voice connection and the cast device."""


class FollowStateMachine:
    def __init__(
        self,
        guild_id: int,
        voice: "VoiceConnectionManager",
        presence: "PresencePublisher",
        session: "LibrespotSession",
    ):
        self.guild_id = guild_id
        self.voice    = voice
        self.presence = presence
        self.session  = session

        self._state = FollowState()
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._connection: Optional["discord.VoiceClient"] = None
        self._closed = False

        self._handlers = {
            Joined:        self._on_joined,
            Left:          self._on_left,
            Moved:         self._on_moved,
            TransportLost: self._on_transport_lost,
            Started:       self._on_started,
            Playing:       self._on_playing,
            Paused:        self._on_paused,
            Stopped:       self._on_stopped,
            Shutdown:      self._on_shutdown,
        }

    # ──────────────────────────────────────────
    # Inbox
    # ──────────────────────────────────────────

    @property
    def state(self) -> FollowState:
        return self._state

    def submit(self, event: Any) -> None:
        """Queue an event. Safe to call from any coroutine on the bot's loop."""
        if self._closed:
            log.debug("Machine closed, dropping %s", event)
            return
        self._inbox.put_nowait(event)

    async def run(self) -> None:
        """Apply queued events until a Shutdown has been applied."""
        while True:
            event = await self._inbox.get()
            try:
                await self.apply(event)
            except Exception:
                log.exception("Unhandled error applying %s", event)
            finally:
                self._inbox.task_done()
            if isinstance(event, Shutdown):
                return

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        await self._inbox.join()

    async def apply(self, event: Any) -> None:
        """Apply one event. Calls must not overlap; run() is the normal caller."""
        handler = self._handlers.get(type(event))
        if handler is None:
            log.warning("No handler for event %r", event)
            return
        before = self._state
        await handler(event)
        if self._state != before:
            log.debug("%s: %s → %s", type(event).__name__, before, self._state)

    def _commit(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)

    # ──────────────────────────────────────────
    # Voice transitions
    # ──────────────────────────────────────────

    async def _on_joined(self, event: Joined) -> None:
        self._commit(user_channel=event.channel, cast_enabled=True)
        await self._set_cast(True)

    async def _on_left(self, event: Left) -> None:
        self._commit(user_channel=None, cast_enabled=False)
        await self._set_cast(False)
        await self.presence.go_offline()
        if self._state.connected_channel is not None:
            if await self._leave():
                self._commit(connected_channel=None)

    async def _on_moved(self, event: Moved) -> None:
        self._commit(user_channel=event.to_channel)
        if self._state.connected_channel is None:
            return
        try:
            await self.voice.move(self.guild_id, event.to_channel)
        except TransportFailure as e:
            log.error("Could not follow user to channel %s: %s", event.to_channel, e)
            return
        self._commit(connected_channel=event.to_channel)

    async def _on_transport_lost(self, event: TransportLost) -> None:
        if self._state.connected_channel != event.channel:
            return
        if self.voice.is_connected(self.guild_id):
            return
        log.warning("Voice connection in channel %s was dropped.", event.channel)
        await self._leave()
        self._commit(connected_channel=None, playback=PlaybackState.stopped())
        await self.presence.clear()

    # ──────────────────────────────────────────
    # Playback events
    # ──────────────────────────────────────────

    async def _on_started(self, event: Started) -> None:
        channel = self._state.user_channel
        if channel is None:
            log.info("Playback started but the tracked user is not in voice, staying disconnected.")
            return
        if await self._connect(channel):
            self._commit(connected_channel=channel, playback=PlaybackState.starting())

    async def _on_playing(self, event: Playing) -> None:
        channel = self._state.user_channel
        if self._state.connected_channel is None and channel is not None:
            # Playing without a live connection counts as a start.
            if await self._connect(channel):
                self._commit(connected_channel=channel)

        self._commit(playback=PlaybackState.playing(event.track))

        try:
            info = await self.session.resolve_track(event.track)
        except MetadataFailure as e:
            log.warning("No metadata for track %s: %s", event.track, e)
            return
        await self.presence.show_track(info)

    async def _on_paused(self, event: Paused) -> None:
        self._commit(playback=PlaybackState.paused())
        await self.presence.clear()

    async def _on_stopped(self, event: Stopped) -> None:
        self._commit(playback=PlaybackState.stopped())
        await self.presence.clear()
        if self._state.connected_channel is not None:
            if await self._leave():
                self._commit(connected_channel=None)

    async def _on_shutdown(self, event: Shutdown) -> None:
        self._closed = True
        if self._state.connected_channel is not None:
            await self._leave()
        await self._set_cast(False)
        self._commit(connected_channel=None, cast_enabled=False,
                     playback=PlaybackState.stopped())

    # ──────────────────────────────────────────
    # Collaborator calls
    # ──────────────────────────────────────────

    async def _connect(self, channel: ChannelId) -> bool:
        """Join `channel` (or reuse the live connection there) and attach audio."""
        fresh = not (
            self._state.connected_channel == channel
            and self._connection is not None
            and self.voice.is_connected(self.guild_id)
        )
        if not fresh and self.voice.is_playing(self.guild_id):
            # librespot keeps writing to the same pipe across tracks
            return True
        try:
            handle = await self.voice.join(self.guild_id, channel) if fresh else self._connection
            self.voice.attach_source(handle, self.session.audio_source())
        except (TransportFailure, CastControlFailure) as e:
            log.error("Could not start casting in channel %s: %s", channel, e)
            if fresh:
                # join() may have succeeded before the source failed
                await self._leave()
            return False
        self._connection = handle
        return True

    async def _leave(self) -> bool:
        try:
            await self.voice.leave(self.guild_id)
        except TransportFailure as e:
            log.error("Could not leave voice: %s", e)
            return False
        self._connection = None
        return True

    async def _set_cast(self, enabled: bool) -> None:
        try:
            if enabled:
                await self.session.enable_cast()
            else:
                await self.session.disable_cast()
        except CastControlFailure as e:
            log.error("Could not %s cast device: %s", "enable" if enabled else "disable", e)

"""
follow/service.py
Runs the follow core: the state machine's consumer task, the playback
event consumer, and the tracker feeding voice updates in. One instance per
bot, created once the guild is known.
"""

from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from errors import CastControlFailure
from .machine import FollowStateMachine, Shutdown
from .state import ChannelId, FollowState, Joined, TransportLost
from .tracker import VoicePresenceTracker

if TYPE_CHECKING:
    from bot.presence import PresencePublisher
    from bot.voice import VoiceConnectionManager
    from playback.session import LibrespotSession

log = logging.getLogger("castbot.service")


class FollowService:
    SHUTDOWN_TIMEOUT = 10.0

    def __init__(
        self,
        user_id: int,
        guild_id: int,
        voice: "VoiceConnectionManager",
        presence: "PresencePublisher",
        session: "LibrespotSession",
    ):
        self.user_id  = user_id
        self.guild_id = guild_id
        self.voice    = voice
        self.session  = session
        self.machine  = FollowStateMachine(guild_id, voice, presence, session)
        self.tracker  = VoicePresenceTracker(user_id, self.machine.submit)
        self._machine_task: Optional[asyncio.Task] = None
        self._playback_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> FollowState:
        return self.machine.state

    @property
    def running(self) -> bool:
        return self._machine_task is not None and not self._machine_task.done()

    def start(self, user_channel: Optional[ChannelId] = None) -> None:
        """
        Start both consumers. `user_channel` is where the tracked user sits
        right now; if set it is applied as a join (cast only, no voice).
        """
        if self.running:
            return
        if user_channel is not None:
            self.machine.submit(Joined(user_channel))
        self._machine_task  = asyncio.create_task(self.machine.run(), name="follow-machine")
        self._playback_task = asyncio.create_task(self._consume_playback(), name="follow-playback")
        log.info("Following user %s in guild %s.", self.user_id, self.guild_id)

    async def _consume_playback(self) -> None:
        async for event in self.session.subscribe():
            self.machine.submit(event)
        log.debug("Playback event stream ended.")

    def on_voice_state_changed(
        self, user_id: int, previous: Optional[ChannelId], new: Optional[ChannelId]
    ) -> None:
        self.tracker.on_voice_state_changed(user_id, previous, new)

    def on_own_connection_dropped(self, channel: ChannelId) -> None:
        self.machine.submit(TransportLost(channel))

    async def stop(self) -> None:
        """Stop consuming, leave voice and disable the cast device."""
        if self._playback_task is not None:
            self._playback_task.cancel()
            await asyncio.gather(self._playback_task, return_exceptions=True)

        if self._machine_task is None:
            return
        self.machine.submit(Shutdown())
        try:
            await asyncio.wait_for(self._machine_task, self.SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            log.warning("Follow machine did not stop in time, releasing resources directly.")
            await self.voice.leave_all()
            try:
                await self.session.disable_cast()
            except CastControlFailure as e:
                log.warning("Failed to disable cast device: %s", e)
        log.info("Follow service stopped.")

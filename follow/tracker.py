"""
follow/tracker.py
Turns raw voice-state updates into Joined / Left / Moved transitions for the
one tracked user. Everybody else is ignored.
"""

from __future__ import annotations
import logging
from typing import Callable, Optional

from .state import ChannelId, Joined, Left, Moved, VoiceTransition

log = logging.getLogger("castbot.tracker")


def classify(
    previous: Optional[ChannelId], new: Optional[ChannelId]
) -> Optional[VoiceTransition]:
    """Classify a channel change. Returns None when nothing changed."""
    if previous == new:
        return None
    if previous is None:
        return Joined(new)
    if new is None:
        return Left(previous)
    return Moved(previous, new)


class VoicePresenceTracker:
    def __init__(self, user_id: int, emit: Callable[[VoiceTransition], None]):
        self.user_id = user_id
        self._emit   = emit

    def on_voice_state_changed(
        self,
        user_id: int,
        previous: Optional[ChannelId],
        new: Optional[ChannelId],
    ) -> Optional[VoiceTransition]:
        if user_id != self.user_id:
            return None

        transition = classify(previous, new)
        if transition is None:
            return None

        log.debug("Tracked user %s: %s", user_id, transition)
        self._emit(transition)
        return transition

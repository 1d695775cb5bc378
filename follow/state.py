"""
follow/state.py
Value types flowing through the follow core: the follow state itself,
playback states, and the classified voice transitions.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from playback.events import TrackRef

ChannelId = int


class PlaybackPhase(Enum):
    STOPPED  = "stopped"
    STARTING = "starting"
    PLAYING  = "playing"
    PAUSED   = "paused"


@dataclass(frozen=True)
class PlaybackState:
    phase: PlaybackPhase = PlaybackPhase.STOPPED
    track: Optional[TrackRef] = None   # only set while PLAYING

    @classmethod
    def stopped(cls) -> "PlaybackState":
        return cls(PlaybackPhase.STOPPED)

    @classmethod
    def starting(cls) -> "PlaybackState":
        return cls(PlaybackPhase.STARTING)

    @classmethod
    def playing(cls, track: TrackRef) -> "PlaybackState":
        return cls(PlaybackPhase.PLAYING, track)

    @classmethod
    def paused(cls) -> "PlaybackState":
        return cls(PlaybackPhase.PAUSED)

    @property
    def is_stopped(self) -> bool:
        return self.phase is PlaybackPhase.STOPPED

    def __str__(self) -> str:
        if self.track:
            return f"{self.phase.value}({self.track})"
        return self.phase.value


@dataclass(frozen=True)
class FollowState:
    """
    Authoritative view of connection + cast + playback status.
    Immutable: the state machine swaps in a new instance per transition,
    so any reference handed out is a consistent snapshot.
    """
    connected_channel: Optional[ChannelId] = None
    cast_enabled: bool = False
    playback: PlaybackState = PlaybackState()
    user_channel: Optional[ChannelId] = None   # tracked user's last known channel


# ── Voice transitions ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Joined:
    channel: ChannelId


@dataclass(frozen=True)
class Left:
    channel: ChannelId


@dataclass(frozen=True)
class Moved:
    from_channel: ChannelId
    to_channel: ChannelId


@dataclass(frozen=True)
class TransportLost:
    """The bot's own voice connection was dropped from outside."""
    channel: ChannelId


VoiceTransition = Union[Joined, Left, Moved]

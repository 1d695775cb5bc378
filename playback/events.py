"""
playback/events.py
Playback lifecycle events and the decoder for the datagrams sent by the
librespot --onevent hook (see playback/onevent.py).

Datagram payload is a JSON object:
    {"event": "playing", "track_id": "...", "name": "...", "artists": ["..."]}
Only "event" is required. Event names follow librespot's PLAYER_EVENT values
across 0.4 and 0.5+ releases.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

TrackRef = str      # Spotify track id, opaque to the core

log = logging.getLogger("castbot.events")


@dataclass(frozen=True)
class Started:
    pass


@dataclass(frozen=True)
class Playing:
    track: TrackRef


@dataclass(frozen=True)
class Paused:
    pass


@dataclass(frozen=True)
class Stopped:
    pass


PlaybackEvent = Union[Started, Playing, Paused, Stopped]


@dataclass(frozen=True)
class TrackInfo:
    artist: str
    title: str

    def __str__(self) -> str:
        return f"{self.artist}: {self.title}"


@dataclass(frozen=True)
class HookMessage:
    """One decoded datagram from the onevent hook."""
    event: str
    track_id: Optional[TrackRef] = None
    name: Optional[str] = None
    artists: tuple[str, ...] = field(default_factory=tuple)

    @property
    def track_info(self) -> Optional[TrackInfo]:
        if not self.name or not self.artists:
            return None
        return TrackInfo(artist=", ".join(self.artists), title=self.name)


# librespot event name → how the core sees it
_STARTED_NAMES = frozenset({"started", "start", "loading"})
_STOPPED_NAMES = frozenset({"stopped", "stop", "session_disconnected"})


def decode_datagram(data: bytes) -> Optional[HookMessage]:
    """Decode a hook datagram. Malformed input yields None."""
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        log.debug("Dropping malformed hook datagram (%d bytes): %s", len(data), e)
        return None

    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        log.debug("Dropping hook datagram without an event name: %r", payload)
        return None

    artists = payload.get("artists") or ()
    if isinstance(artists, str):
        artists = [a for a in artists.splitlines() if a]

    return HookMessage(
        event=payload["event"].strip().lower(),
        track_id=payload.get("track_id") or None,
        name=payload.get("name") or None,
        artists=tuple(str(a) for a in artists),
    )


def to_playback_event(msg: HookMessage) -> Optional[PlaybackEvent]:
    """Map a hook message to a playback event, or None if the core ignores it."""
    if msg.event in _STARTED_NAMES:
        return Started()
    if msg.event == "playing":
        if not msg.track_id:
            log.debug("'playing' without a track id, ignored.")
            return None
        return Playing(msg.track_id)
    if msg.event == "paused":
        return Paused()
    if msg.event in _STOPPED_NAMES:
        return Stopped()
    return None

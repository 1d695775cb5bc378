"""
playback/listener.py
Async UDP listener for playback events sent by the librespot --onevent hook.

Each datagram is decoded, its track metadata is remembered for presence
lookups, and the resulting playback event is queued for the session's
subscriber. The queue is unbounded: librespot emits a handful of events
per track, never a flood.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional

from .events import (
    HookMessage,
    PlaybackEvent,
    TrackInfo,
    TrackRef,
    decode_datagram,
    to_playback_event,
)

log = logging.getLogger("castbot.listener")

METADATA_CACHE_SIZE = 256


class PlaybackEventListener:
    """Listens on 127.0.0.1:<port> for hook datagrams."""

    def __init__(self, port: int, host: str = "127.0.0.1"):
        self.host = host
        self.port = port
        self.events: asyncio.Queue[Optional[PlaybackEvent]] = asyncio.Queue()
        self._metadata: dict[TrackRef, TrackInfo] = {}
        self._transport: Optional[asyncio.DatagramTransport] = None

    async def start(self) -> None:
        log.info("Starting playback event listener on %s:%d", self.host, self.port)
        loop = asyncio.get_running_loop()
        self._transport, _ = await loop.create_datagram_endpoint(
            lambda: _UDPProtocol(self.on_datagram),
            local_addr=(self.host, self.port),
        )

    async def stop(self) -> None:
        if self._transport:
            self._transport.close()
            self._transport = None
        # Wake the subscriber so its iterator ends.
        self.events.put_nowait(None)
        log.info("Playback event listener stopped.")

    def on_datagram(self, data: bytes) -> None:
        """Called per datagram. Decode, remember metadata, queue the event."""
        msg = decode_datagram(data)
        if msg is None:
            return
        self._remember(msg)

        event = to_playback_event(msg)
        if event is None:
            log.debug("Ignoring player event %r", msg.event)
            return
        log.debug("Player event: %s", event)
        self.events.put_nowait(event)

    def _remember(self, msg: HookMessage) -> None:
        info = msg.track_info
        if msg.track_id is None or info is None:
            return
        if len(self._metadata) >= METADATA_CACHE_SIZE and msg.track_id not in self._metadata:
            # dicts keep insertion order: drop the oldest entry
            self._metadata.pop(next(iter(self._metadata)))
        self._metadata[msg.track_id] = info

    def track_info(self, track: TrackRef) -> Optional[TrackInfo]:
        return self._metadata.get(track)


class _UDPProtocol(asyncio.DatagramProtocol):
    def __init__(self, callback: Callable[[bytes], None]):
        self._callback = callback

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self._callback(data)

    def error_received(self, exc: Exception) -> None:
        log.warning("UDP error: %s", exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc:
            log.error("UDP connection lost: %s", exc)

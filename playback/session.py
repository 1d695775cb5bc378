"""
playback/session.py
Facade over the Spotify Connect session.

The session is a librespot process using the `pipe` audio backend: raw
s16le / 44.1 kHz / stereo PCM comes out on its stdout, and player events come
back through the --onevent hook into a PlaybackEventListener.

"Cast enabled" means the librespot process is running, so the device is
visible in the user's Spotify apps. Disabling it stops the process.
"""

from __future__ import annotations
import asyncio
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import discord

from errors import CastControlFailure, MetadataFailure
from .events import PlaybackEvent, TrackInfo, TrackRef
from .listener import PlaybackEventListener

log = logging.getLogger("castbot.session")


@dataclass(frozen=True)
class LibrespotOptions:
    device_name: str = "castbot"
    executable: str = "librespot"
    bitrate: int = 320
    cache_dir: Optional[str] = None
    onevent: str = "castbot-onevent"
    ffmpeg: str = "ffmpeg"


class LibrespotSession:
    STOP_TIMEOUT = 5.0

    def __init__(self, options: LibrespotOptions, listener: PlaybackEventListener):
        self.options   = options
        self.listener  = listener
        self._process: Optional[subprocess.Popen] = None
        self._subscribed = False
        self._lock = asyncio.Lock()

    # ──────────────────────────────────────────
    # Events
    # ──────────────────────────────────────────

    def subscribe(self) -> AsyncIterator[PlaybackEvent]:
        """
        Return the event stream. It can be taken only once; iteration
        suspends until the next event and ends when the listener stops.
        """
        if self._subscribed:
            raise RuntimeError("Playback events already have a subscriber.")
        self._subscribed = True
        return self._iter_events()

    async def _iter_events(self) -> AsyncIterator[PlaybackEvent]:
        while True:
            event = await self.listener.events.get()
            if event is None:
                return
            yield event

    async def resolve_track(self, track: TrackRef) -> TrackInfo:
        info = self.listener.track_info(track)
        if info is None:
            raise MetadataFailure(f"No metadata received for track {track}")
        return info

    # ──────────────────────────────────────────
    # Cast device control
    # ──────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def command(self) -> list[str]:
        opts = self.options
        onevent = shutil.which(opts.onevent) or opts.onevent
        cmd = [
            opts.executable,
            "--name", opts.device_name,
            "--backend", "pipe",
            "--bitrate", str(opts.bitrate),
            "--initial-volume", "100",
            "--onevent", onevent,
        ]
        if opts.cache_dir:
            cmd += ["--cache", opts.cache_dir]
        return cmd

    async def enable_cast(self) -> None:
        async with self._lock:
            if self.is_running:
                return
            env = dict(os.environ, PLAYBACK_EVENT_PORT=str(self.listener.port))
            try:
                self._process = subprocess.Popen(
                    self.command(),
                    stdout=subprocess.PIPE,
                    stdin=subprocess.DEVNULL,
                    env=env,
                )
            except OSError as e:
                self._process = None
                raise CastControlFailure(f"Could not start {self.options.executable}: {e}") from e
            log.info("Spotify Connect device %r enabled (pid %d).",
                     self.options.device_name, self._process.pid)

    async def disable_cast(self) -> None:
        async with self._lock:
            process, self._process = self._process, None
            if process is None or process.poll() is not None:
                return
            try:
                process.terminate()
                try:
                    await asyncio.to_thread(process.wait, self.STOP_TIMEOUT)
                except subprocess.TimeoutExpired:
                    log.warning("librespot did not exit, killing it.")
                    process.kill()
                    await asyncio.to_thread(process.wait)
            except OSError as e:
                raise CastControlFailure(f"Could not stop librespot: {e}") from e
            log.info("Spotify Connect device %r disabled.", self.options.device_name)

    # ──────────────────────────────────────────
    # Audio
    # ──────────────────────────────────────────

    def audio_source(self) -> discord.AudioSource:
        """Continuous PCM source reading librespot's output through ffmpeg."""
        if not self.is_running or self._process.stdout is None:
            raise CastControlFailure("Cast device is not running, no audio to stream.")
        return discord.FFmpegPCMAudio(
            self._process.stdout,
            pipe=True,
            executable=self.options.ffmpeg,
            before_options="-f s16le -ar 44100 -ac 2",
            options="-vn",
        )

    async def close(self) -> None:
        await self.disable_cast()
        await self.listener.stop()

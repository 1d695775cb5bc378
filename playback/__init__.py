"""Playback package __init__.py"""
from .events import Started, Playing, Paused, Stopped, TrackInfo
from .listener import PlaybackEventListener
from .session import LibrespotOptions, LibrespotSession

__all__ = [
    "Started", "Playing", "Paused", "Stopped", "TrackInfo",
    "PlaybackEventListener", "LibrespotOptions", "LibrespotSession",
]

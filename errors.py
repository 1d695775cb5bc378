"""
errors.py
Exception types shared by the follow core and its collaborators.
Only ConfigurationError is fatal; everything else is logged and recovered
by the next voice or playback event.
"""

from __future__ import annotations


class CastbotError(Exception):
    """Base class for castbot errors."""


class ConfigurationError(CastbotError):
    """Missing or invalid configuration, or no usable guild at startup."""


class TransportFailure(CastbotError):
    """A voice join / move / leave / play call failed."""


class MetadataFailure(CastbotError):
    """Track metadata could not be resolved."""


class CastControlFailure(CastbotError):
    """Enabling or disabling the Spotify Connect device failed."""

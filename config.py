"""
config.py
Process configuration, read from the environment (and .env) once at startup.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from errors import ConfigurationError

LOG_LEVELS = ("error", "warn", "info", "debug", "trace")


def _flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _int(env: Mapping[str, str], name: str, default: Optional[int] = None) -> Optional[int]:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Config:
    discord_token: str = field(repr=False)
    tracked_user_id: int
    guild_id: Optional[int] = None
    command_prefix: str = "~"

    log_level: str = "debug"
    log_timestamps: bool = True
    log_colored: bool = True
    log_file: str = "logs/castbot.log"

    device_name: str = "castbot"
    librespot_path: str = "librespot"
    librespot_bitrate: int = 320
    librespot_cache: Optional[str] = None
    onevent_path: str = "castbot-onevent"
    event_port: int = 47770
    ffmpeg_path: str = "ffmpeg"

    openai_api_key: Optional[str] = field(default=None, repr=False)
    openai_base_url: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    @classmethod
    def load(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build a Config from the environment.
        Pass `env` to bypass os.environ and .env (used by tests).
        Raises ConfigurationError for missing or malformed values.
        """
        if env is None:
            load_dotenv()
            env = os.environ

        token = env.get("DISCORD_TOKEN", "").strip()
        if not token:
            raise ConfigurationError("DISCORD_TOKEN is not set.")

        user_id = _int(env, "DISCORD_USER_ID")
        if user_id is None:
            raise ConfigurationError("DISCORD_USER_ID is not set.")

        log_level = env.get("LOG_LEVEL", "debug").strip().lower()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
            )

        bitrate = _int(env, "LIBRESPOT_BITRATE", 320)
        if bitrate not in (96, 160, 320):
            raise ConfigurationError(f"LIBRESPOT_BITRATE must be 96, 160 or 320, got {bitrate}")

        return cls(
            discord_token=token,
            tracked_user_id=user_id,
            guild_id=_int(env, "DISCORD_GUILD_ID"),
            command_prefix=env.get("COMMAND_PREFIX", "~") or "~",
            log_level=log_level,
            log_timestamps=_flag(env.get("LOG_TIMESTAMPS", "true")),
            log_colored=_flag(env.get("LOG_COLORED", "true")),
            log_file=env.get("LOG_FILE", "logs/castbot.log"),
            device_name=env.get("SPOTIFY_DEVICE_NAME", "castbot") or "castbot",
            librespot_path=env.get("LIBRESPOT_PATH", "librespot") or "librespot",
            librespot_bitrate=bitrate,
            librespot_cache=env.get("LIBRESPOT_CACHE") or None,
            onevent_path=env.get("ONEVENT_PATH", "castbot-onevent") or "castbot-onevent",
            event_port=_int(env, "PLAYBACK_EVENT_PORT", 47770),
            ffmpeg_path=env.get("FFMPEG_PATH", "ffmpeg") or "ffmpeg",
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_base_url=env.get("OPENAI_BASE_URL") or None,
            openai_model=env.get("OPENAI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
        )

"""
main.py
Entry point for castbot.
Loads configuration, sets up logging, and runs the Discord client with the
Spotify Connect session alongside it.
"""

from __future__ import annotations
import asyncio
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

import discord
from discord.ext import commands
from rich.logging import RichHandler

from assistant.completion import CompletionClient
from bot.presence import PresencePublisher
from bot.voice import VoiceConnectionManager
from config import Config
from errors import ConfigurationError
from follow.service import FollowService
from playback.listener import PlaybackEventListener
from playback.session import LibrespotOptions, LibrespotSession

log = logging.getLogger("castbot.main")

# Library loggers that are only interesting at trace level
_NOISY_LOGGERS = ("discord", "discord.gateway", "discord.voice_state", "httpx", "openai")

_LEVELS = {
    "error": logging.ERROR,
    "warn":  logging.WARNING,
    "info":  logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


# ──────────────────────────────────────────────
# Logging setup
# ──────────────────────────────────────────────

def setup_logging(config: Config) -> None:
    if config.log_timestamps:
        log_formatter = logging.Formatter(
            "[%(asctime)s] [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        log_formatter = logging.Formatter("[%(levelname)-8s] %(name)s: %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(_LEVELS[config.log_level])

    # Console handler
    if config.log_colored:
        console_handler: logging.Handler = RichHandler(
            show_time=config.log_timestamps, show_path=False, rich_tracebacks=True
        )
        console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(log_formatter)
    root_logger.addHandler(console_handler)

    # Rotating file handler
    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_file,
            maxBytes=5_000_000,   # 5 MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(log_formatter)
        root_logger.addHandler(file_handler)

    if config.log_level != "trace":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


# ──────────────────────────────────────────────
# Bot subclass
# ──────────────────────────────────────────────

class CastBot(commands.Bot):
    def __init__(self, config: Config):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.members         = True
        intents.voice_states    = True
        super().__init__(command_prefix=config.command_prefix, intents=intents)

        self.config        = config
        self.voice_manager = VoiceConnectionManager(self)
        self.presence      = PresencePublisher(self)
        self.listener      = PlaybackEventListener(port=config.event_port)
        self.session       = LibrespotSession(
            LibrespotOptions(
                device_name=config.device_name,
                executable=config.librespot_path,
                bitrate=config.librespot_bitrate,
                cache_dir=config.librespot_cache,
                onevent=config.onevent_path,
                ffmpeg=config.ffmpeg_path,
            ),
            self.listener,
        )
        self.assistant = CompletionClient(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
        )
        self.follow: Optional[FollowService] = None
        self.fatal_error: Optional[Exception] = None

    async def setup_hook(self) -> None:
        """Called once after login, before the gateway connects."""
        for ext in ("bot.commands", "bot.events"):
            await self._load_ext(ext)

        await self.listener.start()
        log.info("Setup complete.")

    async def _load_ext(self, module: str) -> None:
        """Load a cog from its module, with error logging."""
        try:
            await self.load_extension(module)
            log.info("Loaded extension: %s", module)
        except commands.ExtensionError as e:
            log.exception("Failed to load extension %s: %s", module, e)

    async def close(self) -> None:
        log.info("Shutting down bot...")
        if self.follow is not None:
            await self.follow.stop()
        await self.voice_manager.leave_all()
        await self.session.close()
        await super().close()


# ──────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────

async def _run(config: Config) -> Optional[Exception]:
    bot = CastBot(config)
    async with bot:
        await bot.login(config.discord_token)
        info = await bot.application_info()
        log.info(
            "Connected with application %s (%s). Owned by %s (%s)",
            info.name, info.id, info.owner, info.owner.id,
        )
        await bot.connect()
    return bot.fatal_error


def main() -> None:
    try:
        config = Config.load()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        log.error("Configuration error: %s", e)
        sys.exit(1)

    setup_logging(config)
    log.debug("%r", config)

    try:
        fatal = asyncio.run(_run(config))
    except KeyboardInterrupt:
        log.info("Bot interrupted by user.")
        return
    except discord.LoginFailure as e:
        log.error("Discord login failed: %s", e)
        sys.exit(1)
    except Exception as e:
        log.exception("Unexpected error: %s", e)
        sys.exit(1)

    if fatal is not None:
        sys.exit(1)
    log.info("Client shut down successfully.")


if __name__ == "__main__":
    main()

import asyncio
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from discord.ext import commands

from bot.commands import GeneralCommands, describe_state
from bot.events import FollowEvents
from bot.events import current_channel, select_guild
from errors import ConfigurationError
from follow.state import FollowState, PlaybackState

USER = 42


def make_guild(guild_id, members):
    return SimpleNamespace(id=guild_id, name=f"g{guild_id}", get_member=members.get)


def make_member(channel_id=None):
    if channel_id is None:
        return SimpleNamespace(voice=None)
    return SimpleNamespace(voice=SimpleNamespace(channel=SimpleNamespace(id=channel_id)))


def make_client(*guilds):
    by_id = {g.id: g for g in guilds}
    return SimpleNamespace(guilds=list(guilds), get_guild=by_id.get)


def test_select_configured_guild():
    a, b = make_guild(1, {}), make_guild(2, {})
    assert select_guild(make_client(a, b), USER, 2) is b


def test_select_missing_configured_guild_fails():
    with pytest.raises(ConfigurationError):
        select_guild(make_client(make_guild(1, {})), USER, 3)


def test_select_first_guild_with_tracked_user():
    a = make_guild(1, {})
    b = make_guild(2, {USER: make_member()})
    assert select_guild(make_client(a, b), USER, None) is b


def test_select_without_shared_guild_fails():
    with pytest.raises(ConfigurationError):
        select_guild(make_client(make_guild(1, {})), USER, None)


def test_current_channel():
    guild = make_guild(1, {USER: make_member(11), 7: make_member()})
    assert current_channel(guild, USER) == 11
    assert current_channel(guild, 7) is None
    assert current_channel(guild, 8) is None


def test_describe_state():
    text = describe_state(FollowState(
        connected_channel=11, cast_enabled=True,
        playback=PlaybackState.playing("t1"), user_channel=11,
    ))
    assert "<#11>" in text
    assert "**Spotify device:** on" in text
    assert "playing(t1)" in text

    idle = describe_state(FollowState())
    assert "not connected" in idle
    assert "not in voice" in idle
    assert "stopped" in idle


# ── Commands ─────────────────────────────────────────────────────────────────

def make_ctx(interaction=None):
    ctx = MagicMock()
    ctx.send = AsyncMock()
    ctx.interaction = interaction
    ctx.message.created_at = discord.utils.utcnow() - timedelta(milliseconds=120)
    return ctx


def test_ping_and_latency_accept_prefix_invocation():
    assert isinstance(GeneralCommands.ping, commands.HybridCommand)
    assert isinstance(GeneralCommands.latency, commands.HybridCommand)

    cog = GeneralCommands(SimpleNamespace(latency=0.05))
    ctx = make_ctx()

    asyncio.run(cog.ping.callback(cog, ctx))
    ctx.send.assert_awaited_once_with("Pong!")

    ctx.send.reset_mock()
    asyncio.run(cog.latency.callback(cog, ctx))
    reply = ctx.send.await_args.args[0]
    assert reply.startswith("The latency is ")
    assert "(gateway 50ms)" in reply


def test_latency_uses_interaction_time_for_slash_invocation():
    cog = GeneralCommands(SimpleNamespace(latency=0.0))
    interaction = SimpleNamespace(created_at=discord.utils.utcnow() - timedelta(seconds=2))
    ctx = make_ctx(interaction)

    asyncio.run(cog.latency.callback(cog, ctx))

    delay = int(ctx.send.await_args.args[0].split()[3].rstrip("ms"))
    assert delay >= 2000


def test_on_message_ignores_bots_and_logs_users(caplog):
    cog = FollowEvents(SimpleNamespace())
    human = SimpleNamespace(author=SimpleNamespace(bot=False), content="~ping")
    robot = SimpleNamespace(author=SimpleNamespace(bot=True), content="beep")

    with caplog.at_level("DEBUG", logger="castbot.events"):
        asyncio.run(cog.on_message(human))
        asyncio.run(cog.on_message(robot))

    assert "'~ping'" in caplog.text
    assert "beep" not in caplog.text

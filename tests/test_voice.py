import asyncio
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from bot.voice import VoiceConnectionManager
from errors import TransportFailure

GUILD = 1000


def make_vc(connected=True):
    vc = MagicMock()
    vc.is_connected.return_value = connected
    vc.is_playing.return_value = False
    vc.disconnect = AsyncMock()
    vc.move_to = AsyncMock()
    return vc


def make_channel(channel_id, vc=None):
    channel = MagicMock(spec=discord.VoiceChannel)
    channel.id = channel_id
    channel.name = f"voice-{channel_id}"
    channel.connect = AsyncMock(return_value=vc or make_vc())
    return channel


def make_manager(*channels):
    by_id = {c.id: c for c in channels}
    guild = MagicMock()
    guild.get_channel.side_effect = by_id.get
    client = MagicMock()
    client.get_guild.side_effect = lambda gid: guild if gid == GUILD else None
    return VoiceConnectionManager(client)


def test_join_connects_and_tracks_connection():
    vc = make_vc()
    channel = make_channel(1, vc)
    manager = make_manager(channel)

    result = asyncio.run(manager.join(GUILD, 1))

    assert result is vc
    assert manager.connection(GUILD) is vc
    assert manager.is_connected(GUILD)
    channel.connect.assert_awaited_once()


def test_join_releases_existing_connection_first():
    first, second = make_vc(), make_vc()
    manager = make_manager(make_channel(1, first), make_channel(2, second))

    async def main():
        await manager.join(GUILD, 1)
        await manager.join(GUILD, 2)

    asyncio.run(main())

    first.disconnect.assert_awaited_once_with(force=True)
    assert manager.connection(GUILD) is second


def test_join_unknown_channel_is_transport_failure():
    manager = make_manager(make_channel(1))

    with pytest.raises(TransportFailure):
        asyncio.run(manager.join(GUILD, 99))


def test_join_unknown_guild_is_transport_failure():
    manager = make_manager(make_channel(1))

    with pytest.raises(TransportFailure):
        asyncio.run(manager.join(5, 1))


def test_join_timeout_is_transport_failure():
    channel = make_channel(1)
    channel.connect.side_effect = asyncio.TimeoutError()
    manager = make_manager(channel)

    with pytest.raises(TransportFailure):
        asyncio.run(manager.join(GUILD, 1))
    assert manager.connection(GUILD) is None


def test_move_uses_existing_connection():
    vc = make_vc()
    target = make_channel(2)
    manager = make_manager(make_channel(1, vc), target)

    async def main():
        await manager.join(GUILD, 1)
        await manager.move(GUILD, 2)

    asyncio.run(main())

    vc.move_to.assert_awaited_once_with(target)


def test_move_without_connection_fails():
    manager = make_manager(make_channel(1))

    with pytest.raises(TransportFailure):
        asyncio.run(manager.move(GUILD, 1))


def test_leave_without_connection_is_noop():
    manager = make_manager()
    asyncio.run(manager.leave(GUILD))
    assert manager.connection(GUILD) is None


def test_leave_stops_audio_and_disconnects():
    vc = make_vc()
    vc.is_playing.return_value = True
    manager = make_manager(make_channel(1, vc))

    async def main():
        await manager.join(GUILD, 1)
        await manager.leave(GUILD)

    asyncio.run(main())

    vc.stop.assert_called_once()
    vc.disconnect.assert_awaited_once_with(force=True)
    assert not manager.is_connected(GUILD)


def test_attach_source_plays_on_connection():
    vc = make_vc()
    source = MagicMock()
    manager = make_manager()

    manager.attach_source(vc, source)

    vc.play.assert_called_once()
    assert vc.play.call_args.args[0] is source


def test_attach_source_on_dead_connection_fails():
    vc = make_vc(connected=False)
    source = MagicMock()
    manager = make_manager()

    with pytest.raises(TransportFailure):
        manager.attach_source(vc, source)
    source.cleanup.assert_called_once()


def test_failed_disconnect_keeps_client_for_retry():
    vc = make_vc()
    vc.disconnect = AsyncMock(side_effect=[discord.ClientException("gateway gone"), None])
    manager = make_manager(make_channel(1, vc))

    async def main():
        await manager.join(GUILD, 1)
        with pytest.raises(TransportFailure):
            await manager.leave(GUILD)
        assert manager.connection(GUILD) is vc

        await manager.leave(GUILD)

    asyncio.run(main())

    assert vc.disconnect.await_count == 2
    assert manager.connection(GUILD) is None


def test_is_playing_follows_voice_client():
    vc = make_vc()
    manager = make_manager(make_channel(1, vc))
    assert not manager.is_playing(GUILD)

    asyncio.run(manager.join(GUILD, 1))
    assert not manager.is_playing(GUILD)

    vc.is_playing.return_value = True
    assert manager.is_playing(GUILD)

    vc.is_connected.return_value = False
    assert not manager.is_playing(GUILD)

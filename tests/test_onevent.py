import json
import socket

from playback import onevent


def test_build_payload_from_librespot_env():
    payload = onevent.build_payload({
        "PLAYER_EVENT": "track_changed",
        "TRACK_ID": "6rqhFgbbKwnb9MLmUQDhG6",
        "NAME": "Speak to Me",
        "ARTISTS": "Pink Floyd\n",
    })

    assert payload == {
        "event": "track_changed",
        "track_id": "6rqhFgbbKwnb9MLmUQDhG6",
        "name": "Speak to Me",
        "artists": ["Pink Floyd"],
    }


def test_build_payload_without_event():
    assert onevent.build_payload({"TRACK_ID": "x"}) is None


def test_main_sends_datagram(monkeypatch):
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.settimeout(2)
        port = sock.getsockname()[1]

        monkeypatch.setenv("PLAYER_EVENT", "paused")
        monkeypatch.setenv("PLAYBACK_EVENT_PORT", str(port))
        monkeypatch.delenv("TRACK_ID", raising=False)
        monkeypatch.delenv("NAME", raising=False)
        monkeypatch.delenv("ARTISTS", raising=False)

        assert onevent.main() == 0
        data, _ = sock.recvfrom(4096)

    assert json.loads(data) == {"event": "paused"}

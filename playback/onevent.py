"""
playback/onevent.py
Hook executable passed to librespot as --onevent (installed as the
`castbot-onevent` console script).

librespot runs it once per player event with the details in environment
variables. It forwards them as one JSON datagram to the bot's playback
event listener and exits. It must never fail loudly: librespot only logs
the exit status.
"""

from __future__ import annotations
import json
import os
import socket
import sys
from typing import Mapping, Optional

DEFAULT_PORT = 47770


def build_payload(env: Mapping[str, str]) -> Optional[dict]:
    event = env.get("PLAYER_EVENT", "").strip()
    if not event:
        return None

    payload: dict = {"event": event}
    track_id = env.get("TRACK_ID", "").strip()
    if track_id:
        payload["track_id"] = track_id
    name = env.get("NAME", "").strip()
    if name:
        payload["name"] = name
    # librespot joins multiple artists with newlines
    artists = [a for a in env.get("ARTISTS", "").splitlines() if a.strip()]
    if artists:
        payload["artists"] = artists
    return payload


def main() -> int:
    payload = build_payload(os.environ)
    if payload is None:
        return 0

    try:
        port = int(os.environ.get("PLAYBACK_EVENT_PORT", DEFAULT_PORT))
    except ValueError:
        port = DEFAULT_PORT

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.sendto(json.dumps(payload).encode("utf-8"), ("127.0.0.1", port))
    except OSError as e:
        print(f"castbot-onevent: could not deliver {payload['event']}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

from starlette.requests import HTTPConnection

from botrelay.relay import Relay


def get_relay(conn: HTTPConnection) -> Relay:
    relay = getattr(conn.app.state, "relay", None)
    if relay is None:
        raise RuntimeError("Relay not initialized. Was the app started?")
    return relay

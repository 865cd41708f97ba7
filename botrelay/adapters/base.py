from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

from botrelay.api.models import SessionConfig
from botrelay.core.events import AdapterEvent

EventSink = Callable[[AdapterEvent], None]


class ProtocolAdapter(Protocol):
    """One live connection to a game server.

    Implementations push lifecycle events into the sink they were built with and
    expose the bot's current view of the world as plain attributes. Any attribute
    may be missing or None until the server has sent it.
    """

    username: str
    health: float | None
    food: int | None
    is_sleeping: bool | None
    game: Any
    experience: Any
    armor_points: int | None
    entity: Any
    players: Mapping[str, Any]

    def send_chat(self, text: str) -> None:  # pragma: no cover
        ...

    def close(self) -> None:  # pragma: no cover
        ...


class AdapterFactory(Protocol):
    def __call__(self, config: SessionConfig, emit: EventSink) -> ProtocolAdapter:  # pragma: no cover
        ...


PrivilegeCheck = Callable[[ProtocolAdapter], bool]


def has_game_mode_info(adapter: ProtocolAdapter) -> bool:
    """Default privilege check: the server has told us our game mode.

    Servers differ in how (or whether) they reveal operator status, so callers
    with a better signal should inject their own check.
    """

    game = getattr(adapter, "game", None)
    if game is None:
        return False
    if isinstance(game, Mapping):
        return game.get("game_mode") is not None
    return getattr(game, "game_mode", None) is not None

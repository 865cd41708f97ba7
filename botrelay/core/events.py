from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

EventKind = Literal[
    "login",
    "end",
    "kicked",
    "error",
    "chat",
    "player_joined",
    "player_left",
    "health_changed",
    "game_changed",
    "experience_changed",
    "spawned",
    "died",
    "sleep_started",
    "woke_up",
]


@dataclass(frozen=True, slots=True)
class Login:
    kind: Literal["login"] = "login"


@dataclass(frozen=True, slots=True)
class End:
    kind: Literal["end"] = "end"


@dataclass(frozen=True, slots=True)
class Kicked:
    # Plain text, a dict with text/translate fields, or a JSON-encoded string.
    reason: Any = None
    kind: Literal["kicked"] = "kicked"


@dataclass(frozen=True, slots=True)
class Error:
    error: BaseException | str
    kind: Literal["error"] = "error"

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass(frozen=True, slots=True)
class Chat:
    text: str
    kind: Literal["chat"] = "chat"


@dataclass(frozen=True, slots=True)
class PlayerJoined:
    username: str
    kind: Literal["player_joined"] = "player_joined"


@dataclass(frozen=True, slots=True)
class PlayerLeft:
    username: str
    kind: Literal["player_left"] = "player_left"


@dataclass(frozen=True, slots=True)
class HealthChanged:
    kind: Literal["health_changed"] = "health_changed"


@dataclass(frozen=True, slots=True)
class GameChanged:
    kind: Literal["game_changed"] = "game_changed"


@dataclass(frozen=True, slots=True)
class ExperienceChanged:
    kind: Literal["experience_changed"] = "experience_changed"


@dataclass(frozen=True, slots=True)
class Spawned:
    kind: Literal["spawned"] = "spawned"


@dataclass(frozen=True, slots=True)
class Died:
    kind: Literal["died"] = "died"


@dataclass(frozen=True, slots=True)
class SleepStarted:
    kind: Literal["sleep_started"] = "sleep_started"


@dataclass(frozen=True, slots=True)
class WokeUp:
    kind: Literal["woke_up"] = "woke_up"


AdapterEvent = (
    Login
    | End
    | Kicked
    | Error
    | Chat
    | PlayerJoined
    | PlayerLeft
    | HealthChanged
    | GameChanged
    | ExperienceChanged
    | Spawned
    | Died
    | SleepStarted
    | WokeUp
)

# Events that should refresh vitals immediately instead of waiting for the next poll.
VITALS_EVENTS: frozenset[str] = frozenset(
    {
        "health_changed",
        "game_changed",
        "experience_changed",
        "spawned",
        "died",
        "sleep_started",
        "woke_up",
    }
)

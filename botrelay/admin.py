from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from botrelay.api.models import AdminActionKind, ChatCategory, ChatMessage, GameMode
from botrelay.core.context import RelayContext
from botrelay.errors import NotConnectedError, PrivilegeError, RelayError, UnknownIntentError
from botrelay.session import SessionController

logger = logging.getLogger(__name__)

_PLAYER_NAME = re.compile(r"^[A-Za-z0-9_]{1,16}$")


@dataclass(frozen=True, slots=True)
class AdminIntent:
    kind: AdminActionKind
    target: str | None = None
    # Free text for kick/ban; the destination player for teleport.
    reason: str | None = None
    game_mode: GameMode | None = None


def parse_intent(
    *,
    action: str,
    target: str | None = None,
    reason: str | None = None,
    game_mode: GameMode | str | None = None,
) -> AdminIntent:
    try:
        kind = AdminActionKind(action)
    except ValueError as e:
        raise UnknownIntentError(f"Unknown admin action: {action}") from e

    mode: GameMode | None = None
    if game_mode:
        try:
            mode = GameMode(game_mode)
        except ValueError as e:
            raise UnknownIntentError(f"Unknown game mode: {game_mode}") from e

    return AdminIntent(
        kind=kind,
        target=(target or "").strip() or None,
        reason=(reason or "").strip() or None,
        game_mode=mode,
    )


class IntentValidator(ABC):
    """A small, composable check on an admin intent."""

    @abstractmethod
    def validate(self, intent: AdminIntent) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class TargetValidator(IntentValidator):
    def validate(self, intent: AdminIntent) -> None:
        if not intent.target:
            raise UnknownIntentError(f"Action '{intent.kind.value}' requires a target player")
        if not _PLAYER_NAME.match(intent.target):
            raise UnknownIntentError(f"Invalid player name: {intent.target!r}")


@dataclass(frozen=True, slots=True)
class DestinationValidator(IntentValidator):
    def validate(self, intent: AdminIntent) -> None:
        if not intent.reason:
            raise UnknownIntentError("Teleport requires a destination player")
        if not _PLAYER_NAME.match(intent.reason):
            raise UnknownIntentError(f"Invalid destination player: {intent.reason!r}")


@dataclass(frozen=True, slots=True)
class GameModeValidator(IntentValidator):
    def validate(self, intent: AdminIntent) -> None:
        if intent.game_mode is None:
            raise UnknownIntentError(f"Action '{intent.kind.value}' requires a game mode")


@dataclass(frozen=True, slots=True)
class ReasonValidator(IntentValidator):
    max_length: int = 200

    def validate(self, intent: AdminIntent) -> None:
        reason = intent.reason
        if reason is None:
            return
        if "\n" in reason or "\r" in reason:
            raise UnknownIntentError("Reason must be a single line")
        if len(reason) > self.max_length:
            raise UnknownIntentError(f"Reason must be at most {self.max_length} characters")


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[IntentValidator, ...]

    def validate(self, intent: AdminIntent) -> None:
        for v in self.validators:
            v.validate(intent)


DEFAULT_INTENT_PIPELINES: dict[AdminActionKind, ValidatorPipeline] = {
    AdminActionKind.self_gamemode: ValidatorPipeline(validators=(GameModeValidator(),)),
    AdminActionKind.kick: ValidatorPipeline(validators=(TargetValidator(), ReasonValidator())),
    AdminActionKind.ban: ValidatorPipeline(validators=(TargetValidator(), ReasonValidator())),
    AdminActionKind.kill: ValidatorPipeline(validators=(TargetValidator(),)),
    AdminActionKind.teleport: ValidatorPipeline(validators=(TargetValidator(), DestinationValidator())),
    AdminActionKind.gamemode: ValidatorPipeline(validators=(TargetValidator(), GameModeValidator())),
}


def _with_reason(command: str, intent: AdminIntent) -> str:
    return f"{command} {intent.reason}" if intent.reason else command


COMMAND_RENDERERS: dict[AdminActionKind, Callable[[AdminIntent], str]] = {
    AdminActionKind.self_gamemode: lambda i: f"/gamemode {i.game_mode}",
    AdminActionKind.kick: lambda i: _with_reason(f"/kick {i.target}", i),
    AdminActionKind.ban: lambda i: _with_reason(f"/ban {i.target}", i),
    AdminActionKind.kill: lambda i: f"/kill {i.target}",
    AdminActionKind.teleport: lambda i: f"/tp {i.target} {i.reason}",
    AdminActionKind.gamemode: lambda i: f"/gamemode {i.game_mode} {i.target}",
}


def validate_intent(intent: AdminIntent) -> None:
    pipe = DEFAULT_INTENT_PIPELINES.get(intent.kind)
    if pipe is None:
        raise UnknownIntentError(f"Unknown admin action: {intent.kind}")
    pipe.validate(intent)


def render_command(intent: AdminIntent) -> str:
    validate_intent(intent)
    return COMMAND_RENDERERS[intent.kind](intent)


def describe(intent: AdminIntent) -> str:
    if intent.kind == AdminActionKind.self_gamemode:
        return f"Changed own gamemode to {intent.game_mode}"
    if intent.kind == AdminActionKind.teleport:
        return f"Teleported {intent.target} to {intent.reason}"

    text = f"Admin action: {intent.kind.value} performed on {intent.target}"
    if intent.reason:
        text += f" (Reason: {intent.reason})"
    if intent.kind == AdminActionKind.gamemode and intent.game_mode:
        text += f" (Gamemode: {intent.game_mode})"
    return text


class AdminCommandRelay:
    """Turns admin intents into exactly one chat command on the live session."""

    def __init__(self, *, ctx: RelayContext, session: SessionController) -> None:
        self._ctx = ctx
        self._session = session

    def perform(self, intent: AdminIntent) -> ChatMessage:
        adapter = self._session.adapter
        if not self._session.is_connected or adapter is None:
            raise NotConnectedError("Bot is not connected")
        if not self._ctx.privilege_check(adapter):
            raise PrivilegeError("Bot does not have sufficient permissions")

        command = render_command(intent)
        try:
            self._session.send_chat(command)
        except NotConnectedError:
            raise
        except Exception as e:
            logger.exception("Error performing admin action %s", intent.kind.value)
            raise RelayError(f"Failed to perform {intent.kind.value}: {e}") from e

        message = ChatMessage(text=describe(intent), is_system=True, category=ChatCategory.admin)
        self._ctx.hub.publish_chat(message)
        return message

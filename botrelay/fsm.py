from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from botrelay.api.models import ChatCategory, ChatMessage, SessionState
from botrelay.core.events import (
    VITALS_EVENTS,
    AdapterEvent,
    Chat,
    Died,
    End,
    Error,
    Kicked,
    Login,
    PlayerJoined,
    PlayerLeft,
)
from botrelay.reconnect import reason_text

EffectKind = Literal[
    "reset_reconnect",
    "record_reason",
    "schedule_reconnect",
    "start_telemetry",
    "stop_telemetry",
    "reset_telemetry",
    "release_adapter",
    "refresh_roster",
    "refresh_vitals",
    "append_chat",
    "publish_error",
    "publish_status",
]


@dataclass(frozen=True, slots=True)
class Effect:
    kind: EffectKind
    message: ChatMessage | None = None
    reason: Any = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class AppliedEvent:
    """Result of planning one adapter event.

    - `state_changed`: whether `next_state` differs from the input state.
    - `effects`: side effects for the session controller to run, in order.
    """

    state_changed: bool
    next_state: SessionState
    effects: list[Effect] = field(default_factory=list)


class SessionFSM(StateMachine):
    """Legal session transitions; the controller owns the side effects.

    Invariant kept by the controller: an adapter exists exactly while the
    machine is in `connecting` or `connected`.
    """

    disconnected = State(
        SessionState.disconnected.value,
        value=SessionState.disconnected.value,
        initial=True,
    )
    connecting = State(SessionState.connecting.value, value=SessionState.connecting.value)
    connected = State(SessionState.connected.value, value=SessionState.connected.value)
    reconnecting = State(SessionState.reconnecting.value, value=SessionState.reconnecting.value)

    connect = disconnected.to(connecting)
    retry = reconnecting.to(connecting)
    login = connecting.to(connected)
    # Unexpected end: hand off to the reconnect scheduler.
    drop = connecting.to(reconnecting) | connected.to(reconnecting)
    # End after the user asked to disconnect.
    end = connecting.to(disconnected) | connected.to(disconnected)
    disconnect = connecting.to(disconnected) | connected.to(disconnected) | reconnecting.to(disconnected)

    def __init__(self, state: SessionState = SessionState.disconnected):
        super().__init__(start_value=state.value)

    @property
    def session_state(self) -> SessionState:
        return SessionState(str(self.current_state.value))


def transition(state: SessionState, event: str) -> SessionState:
    """Apply one named event; raises TransitionNotAllowed if it is illegal here."""

    fsm = SessionFSM(state)
    fsm.send(event)
    return fsm.session_state


def _try_transition(state: SessionState, event: str) -> SessionState | None:
    try:
        return transition(state, event)
    except TransitionNotAllowed:
        return None


def _chat(text: str, *, category: ChatCategory | None = None) -> Effect:
    msg = ChatMessage(text=text, is_system=category is not None, category=category)
    return Effect(kind="append_chat", message=msg)


def plan_event(
    *,
    state: SessionState,
    event: AdapterEvent,
    manual_disconnect: bool,
    identity: str,
) -> AppliedEvent:
    """Map (current state, adapter event) to (next state, effects).

    Events that are illegal in the current state (a second login, an end while
    already disconnected) plan nothing.
    """

    unchanged = AppliedEvent(state_changed=False, next_state=state)

    if isinstance(event, Login):
        next_state = _try_transition(state, "login")
        if next_state is None:
            return unchanged
        return AppliedEvent(
            state_changed=True,
            next_state=next_state,
            effects=[
                Effect(kind="reset_reconnect"),
                Effect(kind="start_telemetry"),
                Effect(kind="publish_status"),
                _chat(f"Bot successfully connected to server as {identity}"),
            ],
        )

    if isinstance(event, End):
        next_state = _try_transition(state, "end" if manual_disconnect else "drop")
        if next_state is None:
            return unchanged
        effects = [
            Effect(kind="stop_telemetry"),
            Effect(kind="release_adapter"),
            Effect(kind="reset_telemetry"),
        ]
        if not manual_disconnect:
            effects.append(Effect(kind="schedule_reconnect"))
        effects.append(Effect(kind="publish_status"))
        return AppliedEvent(state_changed=True, next_state=next_state, effects=effects)

    if isinstance(event, Kicked):
        return AppliedEvent(
            state_changed=False,
            next_state=state,
            effects=[
                Effect(kind="record_reason", reason=event.reason),
                _chat(f"Bot was kicked from server: {reason_text(event.reason)}"),
            ],
        )

    if isinstance(event, Error):
        return AppliedEvent(
            state_changed=False,
            next_state=state,
            effects=[
                Effect(kind="publish_error", error=event.message),
                _chat(f"Bot error: {event.message}"),
            ],
        )

    if isinstance(event, Chat):
        return AppliedEvent(state_changed=False, next_state=state, effects=[_chat(event.text)])

    if isinstance(event, PlayerJoined):
        return AppliedEvent(
            state_changed=False,
            next_state=state,
            effects=[
                Effect(kind="refresh_roster"),
                _chat(f"Player joined: {event.username}", category=ChatCategory.join),
            ],
        )

    if isinstance(event, PlayerLeft):
        return AppliedEvent(
            state_changed=False,
            next_state=state,
            effects=[
                Effect(kind="refresh_roster"),
                _chat(f"Player left: {event.username}", category=ChatCategory.leave),
            ],
        )

    if isinstance(event, Died):
        return AppliedEvent(
            state_changed=False,
            next_state=state,
            effects=[
                _chat("Bot died and will respawn", category=ChatCategory.death),
                Effect(kind="refresh_vitals"),
            ],
        )

    if event.kind in VITALS_EVENTS:
        return AppliedEvent(state_changed=False, next_state=state, effects=[Effect(kind="refresh_vitals")])

    return unchanged

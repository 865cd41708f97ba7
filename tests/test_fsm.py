from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from botrelay.api.models import ChatCategory, SessionState
from botrelay.core.events import Chat, Died, End, Error, HealthChanged, Kicked, Login, PlayerJoined, PlayerLeft
from botrelay.fsm import SessionFSM, plan_event, transition


def _kinds(applied) -> list[str]:
    return [e.kind for e in applied.effects]


@pytest.mark.parametrize(
    ("state", "event", "expected"),
    [
        (SessionState.disconnected, "connect", SessionState.connecting),
        (SessionState.reconnecting, "retry", SessionState.connecting),
        (SessionState.connecting, "login", SessionState.connected),
        (SessionState.connected, "drop", SessionState.reconnecting),
        (SessionState.connecting, "drop", SessionState.reconnecting),
        (SessionState.connected, "end", SessionState.disconnected),
        (SessionState.reconnecting, "disconnect", SessionState.disconnected),
    ],
)
def test_legal_transitions(state: SessionState, event: str, expected: SessionState) -> None:
    assert transition(state, event) == expected


@pytest.mark.parametrize(
    ("state", "event"),
    [
        (SessionState.disconnected, "login"),
        (SessionState.disconnected, "disconnect"),
        (SessionState.connected, "connect"),
        (SessionState.reconnecting, "login"),
    ],
)
def test_illegal_transitions_raise(state: SessionState, event: str) -> None:
    with pytest.raises(TransitionNotAllowed):
        transition(state, event)


def test_machine_starts_disconnected() -> None:
    assert SessionFSM().session_state == SessionState.disconnected


def test_login_plan() -> None:
    applied = plan_event(state=SessionState.connecting, event=Login(), manual_disconnect=False, identity="Steve")

    assert applied.state_changed
    assert applied.next_state == SessionState.connected
    assert _kinds(applied) == ["reset_reconnect", "start_telemetry", "publish_status", "append_chat"]
    assert applied.effects[-1].message.text == "Bot successfully connected to server as Steve"


def test_second_login_is_ignored() -> None:
    applied = plan_event(state=SessionState.connected, event=Login(), manual_disconnect=False, identity="Steve")

    assert not applied.state_changed
    assert applied.effects == []


def test_unexpected_end_schedules_reconnect() -> None:
    applied = plan_event(state=SessionState.connected, event=End(), manual_disconnect=False, identity="Steve")

    assert applied.next_state == SessionState.reconnecting
    assert _kinds(applied) == [
        "stop_telemetry",
        "release_adapter",
        "reset_telemetry",
        "schedule_reconnect",
        "publish_status",
    ]


def test_manual_end_does_not_reconnect() -> None:
    applied = plan_event(state=SessionState.connected, event=End(), manual_disconnect=True, identity="Steve")

    assert applied.next_state == SessionState.disconnected
    assert "schedule_reconnect" not in _kinds(applied)


def test_end_while_disconnected_plans_nothing() -> None:
    applied = plan_event(state=SessionState.disconnected, event=End(), manual_disconnect=False, identity="Steve")

    assert not applied.state_changed
    assert applied.effects == []


def test_kick_records_reason_and_posts_chat() -> None:
    applied = plan_event(
        state=SessionState.connected,
        event=Kicked(reason={"text": "Flying is not enabled"}),
        manual_disconnect=False,
        identity="Steve",
    )

    assert _kinds(applied) == ["record_reason", "append_chat"]
    assert applied.effects[0].reason == {"text": "Flying is not enabled"}
    assert applied.effects[1].message.text == "Bot was kicked from server: Flying is not enabled"


def test_error_is_broadcast_and_logged_to_chat() -> None:
    applied = plan_event(
        state=SessionState.connected,
        event=Error(error=TimeoutError("read timed out")),
        manual_disconnect=False,
        identity="Steve",
    )

    assert _kinds(applied) == ["publish_error", "append_chat"]
    assert applied.effects[0].error == "read timed out"
    assert applied.effects[1].message.text == "Bot error: read timed out"


def test_chat_passes_through() -> None:
    applied = plan_event(state=SessionState.connected, event=Chat(text="<Alex> hi"), manual_disconnect=False, identity="Steve")

    assert applied.effects[0].message.text == "<Alex> hi"
    assert not applied.effects[0].message.is_system


def test_roster_events_refresh_and_announce() -> None:
    joined = plan_event(state=SessionState.connected, event=PlayerJoined(username="Alex"), manual_disconnect=False, identity="Steve")
    left = plan_event(state=SessionState.connected, event=PlayerLeft(username="Alex"), manual_disconnect=False, identity="Steve")

    assert _kinds(joined) == ["refresh_roster", "append_chat"]
    assert joined.effects[1].message.category == ChatCategory.join
    assert left.effects[1].message.text == "Player left: Alex"


def test_vitals_events_refresh_vitals() -> None:
    health = plan_event(state=SessionState.connected, event=HealthChanged(), manual_disconnect=False, identity="Steve")
    died = plan_event(state=SessionState.connected, event=Died(), manual_disconnect=False, identity="Steve")

    assert _kinds(health) == ["refresh_vitals"]
    assert _kinds(died) == ["append_chat", "refresh_vitals"]
    assert died.effects[0].message.category == ChatCategory.death

from __future__ import annotations

import json

import pytest

from botrelay.config import ReconnectPolicy
from botrelay.reconnect import (
    ReconnectScheduler,
    ThrottleDetector,
    default_detectors,
    detect_explicit_wait,
    plan_retry,
    reason_text,
)
from helpers import ManualScheduler

POLICY = ReconnectPolicy()
DETECTORS = default_detectors(POLICY)


def _plan(attempt_count: int, backoff_ms: int, reason: object = None):
    return plan_retry(
        attempt_count=attempt_count,
        backoff_ms=backoff_ms,
        reason=reason,
        policy=POLICY,
        detectors=DETECTORS,
    )


def test_explicit_wait_seconds_adds_margin() -> None:
    plan = _plan(0, 5_000, "You must wait 45 seconds before reconnecting")

    assert plan.attempt == 1
    assert plan.delay_ms == 50_000
    assert plan.source == "explicit"


def test_explicit_wait_minutes() -> None:
    assert _plan(0, 5_000, "Please WAIT 2 minutes").delay_ms == 125_000
    assert detect_explicit_wait("wait 1 minute").delay_ms == 60_000


def test_throttle_scales_with_attempt() -> None:
    reason = "Connection throttled! Please wait before reconnecting."

    assert _plan(0, 5_000, reason).delay_ms == 90_000
    assert _plan(2, 5_000, reason).delay_ms == 150_000
    assert _plan(2, 5_000, reason).source == "throttle"


def test_throttle_delay_grows_past_ceiling() -> None:
    plan = _plan(8, 5_000, "You are being throttled")

    assert plan.attempt == 9
    assert plan.delay_ms == 330_000
    assert plan.backoff_ms == POLICY.ceiling_ms


def test_throttle_markers_are_configurable() -> None:
    detector = ThrottleDetector(markers=("slow down",), min_delay_ms=10_000)

    assert detector("Please SLOW DOWN") is not None
    assert detector("throttled") is None


def test_backoff_doubles_after_grace_attempts() -> None:
    backoff = POLICY.floor_ms
    delays = []
    for attempt_count in range(6):
        plan = _plan(attempt_count, backoff)
        delays.append(plan.delay_ms)
        backoff = plan.backoff_ms

    assert delays == [5_000, 5_000, 5_000, 10_000, 20_000, 40_000]


def test_backoff_never_exceeds_ceiling() -> None:
    plan = _plan(20, 250_000)

    assert plan.delay_ms == POLICY.ceiling_ms
    assert plan.backoff_ms == POLICY.ceiling_ms


def test_short_explicit_wait_does_not_lower_backoff() -> None:
    plan = _plan(5, 40_000, "wait 1 seconds")

    assert plan.delay_ms == 6_000
    assert plan.backoff_ms == 40_000


def test_long_explicit_wait_raises_backoff() -> None:
    plan = _plan(0, 5_000, "wait 2 minutes")

    assert plan.backoff_ms == 125_000


@pytest.mark.parametrize(
    ("reason", "expected"),
    [
        (None, ""),
        ("plain text", "plain text"),
        ({"text": "", "extra": [{"text": "wait "}, {"text": "45 seconds"}]}, "wait 45 seconds"),
        ({"translate": "multiplayer.disconnect.kicked"}, "multiplayer.disconnect.kicked"),
        (json.dumps({"text": "Server closed"}), "Server closed"),
        ("[1, 2]", "[1, 2]"),
        (42, "42"),
    ],
)
def test_reason_text_shapes(reason: object, expected: str) -> None:
    assert reason_text(reason) == expected


def test_component_reason_drives_explicit_delay() -> None:
    reason = {"text": "", "extra": [{"text": "You must wait "}, {"text": "30 seconds"}]}

    assert _plan(0, 5_000, reason).delay_ms == 35_000


def test_unrecognized_reason_falls_back_to_backoff() -> None:
    plan = _plan(0, 5_000, "You have been banned")

    assert plan.source == "backoff"
    assert plan.delay_ms == 5_000


@pytest.mark.asyncio
async def test_scheduler_keeps_one_pending_retry() -> None:
    clock = ManualScheduler()
    reconnect = ReconnectScheduler(scheduler=clock)
    fired: list[int] = []

    async def _on_fire() -> None:
        fired.append(clock.now_ms)

    reconnect.schedule(_on_fire)
    reconnect.schedule(_on_fire)
    assert reconnect.pending
    assert reconnect.state.attempt_count == 2
    assert len(clock.active) == 1

    await clock.advance(5_000)

    assert fired == [5_000]
    assert not reconnect.pending
    assert reconnect.last_plan is None


@pytest.mark.asyncio
async def test_cancel_prevents_fire() -> None:
    clock = ManualScheduler()
    reconnect = ReconnectScheduler(scheduler=clock)
    fired: list[int] = []

    async def _on_fire() -> None:
        fired.append(clock.now_ms)

    reconnect.schedule(_on_fire)
    assert reconnect.cancel() is True
    assert reconnect.cancel() is False

    await clock.advance(60_000)
    assert fired == []


def test_reset_restores_floor() -> None:
    reconnect = ReconnectScheduler(scheduler=ManualScheduler())
    reconnect.state.attempt_count = 4
    reconnect.state.current_delay_ms = 80_000
    reconnect.record_reason("wait 10 seconds")

    reconnect.reset()

    assert reconnect.state.attempt_count == 0
    assert reconnect.state.current_delay_ms == POLICY.floor_ms
    assert reconnect.state.last_disconnect_reason is None

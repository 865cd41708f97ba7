from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from botrelay.config import ReconnectPolicy
from botrelay.scheduler import Callback, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DelaySource = Literal["explicit", "throttle", "backoff"]


@dataclass(frozen=True, slots=True)
class DelayHint:
    delay_ms: int
    source: Literal["explicit", "throttle"]


class ReasonDetector(Protocol):
    def __call__(self, text: str) -> DelayHint | None:  # pragma: no cover
        ...


_WAIT_SECONDS = re.compile(r"wait (\d+) seconds?", re.IGNORECASE)
_WAIT_MINUTES = re.compile(r"wait (\d+) minutes?", re.IGNORECASE)


def detect_explicit_wait(text: str) -> DelayHint | None:
    """Find a "wait N seconds" / "wait N minutes" directive."""

    if m := _WAIT_SECONDS.search(text):
        return DelayHint(delay_ms=int(m.group(1)) * 1000, source="explicit")
    if m := _WAIT_MINUTES.search(text):
        return DelayHint(delay_ms=int(m.group(1)) * 60_000, source="explicit")
    return None


@dataclass(frozen=True, slots=True)
class ThrottleDetector:
    """Match server wording for connection throttling.

    The markers are server-specific; swap them out per deployment.
    """

    markers: tuple[str, ...] = ("throttled", "before reconnecting")
    min_delay_ms: int = 60_000

    def __call__(self, text: str) -> DelayHint | None:
        folded = text.casefold()
        if any(marker.casefold() in folded for marker in self.markers):
            return DelayHint(delay_ms=self.min_delay_ms, source="throttle")
        return None


def default_detectors(policy: ReconnectPolicy) -> tuple[ReasonDetector, ...]:
    # Order matters: an explicit wait wins over the throttle wording around it.
    return (detect_explicit_wait, ThrottleDetector(min_delay_ms=policy.throttle_min_ms))


def _component_text(component: Mapping[str, Any]) -> str:
    parts: list[str] = []
    text = component.get("text")
    if text:
        parts.append(str(text))
    for child in component.get("extra") or ():
        if isinstance(child, Mapping):
            parts.append(_component_text(child))
        elif child:
            parts.append(str(child))
    joined = "".join(parts)
    if joined:
        return joined
    translate = component.get("translate")
    return str(translate) if translate else ""


def reason_text(reason: Any) -> str:
    """Best-effort plain text for a disconnect reason.

    Accepts plain text, a chat component dict, or a JSON-encoded component.
    """

    if reason is None:
        return ""
    if isinstance(reason, Mapping):
        text = _component_text(reason)
        if text:
            return text
        try:
            return json.dumps(reason, default=str)
        except (TypeError, ValueError):
            return str(reason)
    if isinstance(reason, str):
        try:
            parsed = json.loads(reason)
        except ValueError:
            return reason
        if isinstance(parsed, Mapping):
            return _component_text(parsed) or reason
        return reason
    return str(reason)


def detect_delay(reason: Any, detectors: Sequence[ReasonDetector]) -> DelayHint | None:
    if reason is None:
        return None
    text = reason_text(reason)
    if not text:
        return None
    for detector in detectors:
        hint = detector(text)
        if hint is not None:
            return hint
    return None


@dataclass(frozen=True, slots=True)
class RetryPlan:
    attempt: int
    delay_ms: int
    # Backoff value to carry into the next attempt.
    backoff_ms: int
    source: DelaySource


def plan_retry(
    *,
    attempt_count: int,
    backoff_ms: int,
    reason: Any,
    policy: ReconnectPolicy,
    detectors: Sequence[ReasonDetector],
) -> RetryPlan:
    """Decide how long to wait before the next attempt.

    Pure: callers apply the returned attempt/backoff to their ReconnectState.
    """

    attempt = attempt_count + 1
    hint = detect_delay(reason, detectors)

    if hint is None:
        backoff = backoff_ms
        if attempt > policy.grace_attempts:
            backoff = min(backoff_ms * 2, policy.ceiling_ms)
        return RetryPlan(attempt=attempt, delay_ms=backoff, backoff_ms=backoff, source="backoff")

    if hint.source == "explicit":
        delay = hint.delay_ms + policy.explicit_wait_margin_ms
    else:
        # Linear in attempts; the backoff ceiling does not apply.
        delay = int(hint.delay_ms * (1 + 0.5 * attempt))

    backoff = max(backoff_ms, min(delay, policy.ceiling_ms))
    return RetryPlan(attempt=attempt, delay_ms=delay, backoff_ms=backoff, source=hint.source)


@dataclass(slots=True)
class ReconnectState:
    attempt_count: int = 0
    current_delay_ms: int = 5_000
    last_disconnect_reason: Any = None
    manual_disconnect: bool = False

    def reset(self, *, floor_ms: int) -> None:
        self.attempt_count = 0
        self.current_delay_ms = floor_ms
        self.last_disconnect_reason = None
        self.manual_disconnect = False


@dataclass(slots=True)
class ReconnectScheduler:
    """Owns attempt/backoff state and the single pending retry timer."""

    scheduler: Scheduler
    policy: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    detectors: tuple[ReasonDetector, ...] = ()
    state: ReconnectState = field(default_factory=ReconnectState)
    _handle: TimerHandle | None = None
    _last_plan: RetryPlan | None = None

    def __post_init__(self) -> None:
        if not self.detectors:
            self.detectors = default_detectors(self.policy)
        self.state.current_delay_ms = self.policy.floor_ms

    @property
    def pending(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    @property
    def last_plan(self) -> RetryPlan | None:
        return self._last_plan if self.pending else None

    def record_reason(self, reason: Any) -> None:
        self.state.last_disconnect_reason = reason

    def reset(self) -> None:
        self.state.reset(floor_ms=self.policy.floor_ms)

    def schedule(self, on_fire: Callback) -> RetryPlan:
        plan = plan_retry(
            attempt_count=self.state.attempt_count,
            backoff_ms=self.state.current_delay_ms,
            reason=self.state.last_disconnect_reason,
            policy=self.policy,
            detectors=self.detectors,
        )
        self.state.attempt_count = plan.attempt
        self.state.current_delay_ms = plan.backoff_ms

        self.cancel()
        self._last_plan = plan

        handle: TimerHandle | None = None

        async def _fire() -> None:
            if self._handle is handle:
                self._handle = None
            await on_fire()

        handle = self.scheduler.after(plan.delay_ms, _fire)
        self._handle = handle

        logger.info(
            "Scheduling reconnect in %ds (attempt #%d, %s)",
            round(plan.delay_ms / 1000),
            plan.attempt,
            plan.source,
        )
        return plan

    def cancel(self) -> bool:
        """Cancel the pending retry, if any. Returns True if one was cancelled."""

        handle, self._handle = self._handle, None
        if handle is None or handle.cancelled:
            return False
        handle.cancel()
        return True

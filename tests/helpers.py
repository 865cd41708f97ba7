"""Fakes and helpers shared by the test modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

from botrelay.api.models import SessionConfig
from botrelay.core.events import AdapterEvent, Login
from botrelay.relay import Relay
from botrelay.scheduler import Callback


class FakeAdapter:
    """In-memory stand-in for a protocol client.

    Tests drive it by calling `emit(...)` and by setting attributes directly.
    """

    def __init__(self, config: SessionConfig, emit: Any) -> None:
        self.config = config
        self.emit = emit
        self.username = config.identity
        self.health: float | None = 20.0
        self.food: int | None = 20
        self.is_sleeping: bool | None = False
        self.game: Any = {"game_mode": "survival"}
        self.experience: Any = {"level": 3, "points": 40, "progress": 0.25}
        self.armor_points: int | None = 0
        self.entity: Any = SimpleNamespace(position=SimpleNamespace(x=10.5, y=64.0, z=-3.0), is_valid=True)
        self.players: dict[str, Any] = {
            config.identity: {"username": config.identity, "ping": 12, "uuid": "self-uuid"},
        }
        self.sent: list[str] = []
        self.closed = False

    def send_chat(self, text: str) -> None:
        self.sent.append(text)

    def close(self) -> None:
        self.closed = True


class FakeAdapterFactory:
    def __init__(self) -> None:
        self.created: list[FakeAdapter] = []
        # Number of upcoming calls that should fail.
        self.failures = 0

    def __call__(self, config: SessionConfig, emit: Any) -> FakeAdapter:
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError("connection refused")
        adapter = FakeAdapter(config, emit)
        self.created.append(adapter)
        return adapter

    @property
    def latest(self) -> FakeAdapter:
        return self.created[-1]


@dataclass(eq=False)
class _ManualTimer:
    due_ms: int
    interval_ms: int | None
    fn: Callback
    seq: int
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Virtual-clock scheduler: nothing fires until `advance()` is awaited."""

    now_ms: int = 0
    _timers: list[_ManualTimer] = field(default_factory=list)
    _seq: int = 0

    def after(self, delay_ms: int, fn: Callback) -> _ManualTimer:
        return self._add(self.now_ms + max(delay_ms, 0), None, fn)

    def every(self, interval_ms: int, fn: Callback) -> _ManualTimer:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        return self._add(self.now_ms + interval_ms, interval_ms, fn)

    @property
    def active(self) -> list[_ManualTimer]:
        return [t for t in self._timers if not t.cancelled]

    async def advance(self, ms: int) -> None:
        target = self.now_ms + ms
        while True:
            due = [t for t in self.active if t.due_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due_ms, t.seq))
            self.now_ms = timer.due_ms
            if timer.interval_ms is None:
                self._timers.remove(timer)
            else:
                timer.due_ms += timer.interval_ms
            await timer.fn()
        self.now_ms = target

    async def aclose(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

    def _add(self, due_ms: int, interval_ms: int | None, fn: Callback) -> _ManualTimer:
        self._seq += 1
        timer = _ManualTimer(due_ms=due_ms, interval_ms=interval_ms, fn=fn, seq=self._seq)
        self._timers.append(timer)
        return timer


class RecordingSubscriber:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def send(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    @property
    def types(self) -> list[str]:
        return [m["type"] for m in self.messages]

    def payloads(self, kind: str) -> list[Any]:
        return [m["payload"] for m in self.messages if m["type"] == kind]

    def chat_texts(self) -> list[str]:
        return [p["text"] for p in self.payloads("chatMessage")]


class FailingSubscriber:
    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, message: dict[str, Any]) -> None:
        self.attempts += 1
        raise ConnectionResetError("viewer went away")


async def emit(relay: Relay, adapter: FakeAdapter, event: AdapterEvent) -> None:
    """Push one event from `adapter` and wait for the relay to handle it."""

    adapter.emit(event)
    await relay.settle()


async def connect_and_login(relay: Relay, adapters: FakeAdapterFactory, config: SessionConfig) -> FakeAdapter:
    await relay.connect(config)
    adapter = adapters.latest
    await emit(relay, adapter, Login())
    return adapter


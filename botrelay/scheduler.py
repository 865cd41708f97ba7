from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    @property
    def cancelled(self) -> bool:  # pragma: no cover
        ...

    def cancel(self) -> None:  # pragma: no cover
        ...


class Scheduler(Protocol):
    """Timer capability shared by the session, reconnect and telemetry code.

    Contract:
      - `after(delay_ms, fn)` runs `fn` once; `every(interval_ms, fn)` runs it
        each interval, first run one interval from now.
      - `handle.cancel()` is synchronous: once it returns, `fn` will not start
        again for that handle.
    """

    def after(self, delay_ms: int, fn: Callback) -> TimerHandle:  # pragma: no cover
        ...

    def every(self, interval_ms: int, fn: Callback) -> TimerHandle:  # pragma: no cover
        ...

    async def aclose(self) -> None:  # pragma: no cover
        ...


class _LoopTimer:
    def __init__(self, owner: "AsyncioScheduler", fn: Callback, *, interval_s: float | None) -> None:
        self._owner = owner
        self._fn = fn
        self._interval_s = interval_s
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def arm(self, delay_s: float) -> None:
        self._timer = self._owner.loop.call_later(delay_s, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        if self._interval_s is not None:
            self.arm(self._interval_s)
        self._task = self._owner.spawn(self._fn)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        # A callback may cancel its own handle (e.g. a retry rescheduling itself);
        # only tasks other than the running one are interrupted.
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def after(self, delay_ms: int, fn: Callback) -> TimerHandle:
        timer = _LoopTimer(self, fn, interval_s=None)
        timer.arm(max(delay_ms, 0) / 1000)
        return timer

    def every(self, interval_ms: int, fn: Callback) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        interval_s = interval_ms / 1000
        timer = _LoopTimer(self, fn, interval_s=interval_s)
        timer.arm(interval_s)
        return timer

    def spawn(self, fn: Callback) -> asyncio.Task[None]:
        task = self.loop.create_task(self._run(fn))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, fn: Callback) -> None:
        try:
            await fn()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled callback failed")

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

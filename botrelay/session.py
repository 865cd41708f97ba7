from __future__ import annotations

import asyncio
import logging

from botrelay.adapters.base import EventSink, ProtocolAdapter
from botrelay.api.models import ChatMessage, SessionConfig, SessionState, StatusPayload
from botrelay.core.context import RelayContext
from botrelay.core.events import AdapterEvent, Chat, Error, Kicked
from botrelay.errors import AdapterConstructionError, NotConnectedError
from botrelay.fsm import Effect, plan_event, transition
from botrelay.reconnect import ReconnectScheduler, ReconnectState, reason_text
from botrelay.telemetry import TelemetryPoller

logger = logging.getLogger(__name__)


class SessionController:
    """Owns the single adapter instance and drives the session state machine.

    Adapter events enter one queue and are handled in arrival order by a single
    pump task. Requests, retries and events all take the same lock, so at most
    one adapter ever exists.
    """

    def __init__(
        self,
        *,
        ctx: RelayContext,
        telemetry: TelemetryPoller,
        reconnect: ReconnectScheduler,
    ) -> None:
        self._ctx = ctx
        self._hub = ctx.hub
        self._telemetry = telemetry
        self._reconnect = reconnect

        self._state = SessionState.disconnected
        self._adapter: ProtocolAdapter | None = None
        self._last_config: SessionConfig | None = None
        # Bumped whenever an adapter is opened or released; events carrying an
        # older generation come from a superseded adapter and are dropped.
        self._generation = 0

        self._lock = asyncio.Lock()
        self._events: asyncio.Queue[tuple[int, AdapterEvent]] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pump_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def adapter(self) -> ProtocolAdapter | None:
        return self._adapter

    @property
    def last_config(self) -> SessionConfig | None:
        return self._last_config

    @property
    def reconnect_state(self) -> ReconnectState:
        return self._reconnect.state

    @property
    def is_connected(self) -> bool:
        return self._state == SessionState.connected and self._adapter is not None

    async def start(self) -> None:
        if self._pump_task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._pump_task = self._loop.create_task(self._pump())
        self._publish_status()

    async def stop(self) -> None:
        async with self._lock:
            if self._state != SessionState.disconnected:
                self._teardown()

        task, self._pump_task = self._pump_task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait until every adapter event received so far has been handled."""

        await self._events.join()

    def status(self) -> StatusPayload:
        settings = self._ctx.settings
        config = self._last_config
        adapter = self._adapter

        identity = getattr(adapter, "username", None) if adapter is not None else None
        if not identity:
            identity = config.identity if config is not None else settings.default_username

        plan = self._reconnect.last_plan if self._state == SessionState.reconnecting else None
        return StatusPayload(
            state=self._state,
            connected=self._state == SessionState.connected,
            connecting=self._state == SessionState.connecting,
            identity=identity,
            server=config.address if config is not None else settings.default_server,
            reconnect_attempt=self._reconnect.state.attempt_count,
            next_retry_ms=plan.delay_ms if plan is not None else None,
        )

    async def connect(self, config: SessionConfig) -> None:
        """Explicit connect: replaces any existing session with a new one.

        Raises AdapterConstructionError if the adapter cannot be created; the
        session is left disconnected in that case.
        """

        async with self._lock:
            if self._state != SessionState.disconnected:
                self._teardown()
            self._reconnect.reset()
            try:
                self._open(config, event="connect")
            except AdapterConstructionError as e:
                logger.error("Error connecting bot: %s", e)
                self._hub.publish_error(str(e))
                self._publish_status()
                raise

    async def disconnect(self) -> bool:
        """Explicit disconnect. Idempotent: returns False if there was nothing to do."""

        async with self._lock:
            if self._state == SessionState.disconnected:
                return False
            self._teardown()
            return True

    def send_chat(self, text: str) -> None:
        adapter = self._adapter
        if not self.is_connected or adapter is None:
            raise NotConnectedError("Bot is not connected")
        adapter.send_chat(text)
        logger.info("[WEB -> MC] %s", text)

    def sink_for(self, generation: int) -> EventSink:
        def _emit(event: AdapterEvent) -> None:
            loop = self._loop
            if loop is None:
                raise RuntimeError("SessionController.start() has not been called")
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                self._events.put_nowait((generation, event))
            else:
                loop.call_soon_threadsafe(self._events.put_nowait, (generation, event))

        return _emit

    def _open(self, config: SessionConfig, *, event: str) -> None:
        self._last_config = config
        self._generation += 1
        logger.info("Connecting to %s as %s", config.address, config.identity)
        try:
            adapter = self._ctx.adapter_factory(config, self.sink_for(self._generation))
        except AdapterConstructionError:
            raise
        except Exception as e:
            raise AdapterConstructionError(f"Failed to connect bot: {e}") from e

        self._adapter = adapter
        self._set_state(transition(self._state, event))
        self._publish_status()

    def _teardown(self) -> None:
        """Disconnect path shared by explicit disconnect, connect and shutdown."""

        self._reconnect.cancel()
        self._reconnect.reset()
        self._reconnect.state.manual_disconnect = True
        self._telemetry.stop()

        adapter = self._release_adapter()
        if adapter is not None:
            try:
                adapter.close()
            except Exception:
                logger.exception("Error closing adapter")

        self._set_state(transition(self._state, "disconnect"))
        self._reset_telemetry()
        self._publish_status()

    def _release_adapter(self) -> ProtocolAdapter | None:
        adapter, self._adapter = self._adapter, None
        self._generation += 1
        return adapter

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            logger.info("Session %s -> %s", self._state.value, state.value)
        self._state = state

    async def _pump(self) -> None:
        while True:
            generation, event = await self._events.get()
            try:
                async with self._lock:
                    self._handle(generation, event)
            except Exception:
                logger.exception("Failed to handle adapter event %s", event.kind)
            finally:
                self._events.task_done()

    def _handle(self, generation: int, event: AdapterEvent) -> None:
        if generation != self._generation:
            logger.debug("Dropping %s event from superseded adapter", event.kind)
            return

        if isinstance(event, Chat):
            logger.info("[MC] %s", event.text)
        elif isinstance(event, Kicked):
            logger.warning("Bot was kicked: %s", reason_text(event.reason))
        elif isinstance(event, Error):
            exc = event.error if isinstance(event.error, BaseException) else None
            logger.error("Bot error: %s", event.message, exc_info=exc)

        identity = getattr(self._adapter, "username", None) or (
            self._last_config.identity if self._last_config else self._ctx.settings.default_username
        )
        applied = plan_event(
            state=self._state,
            event=event,
            manual_disconnect=self._reconnect.state.manual_disconnect,
            identity=identity,
        )
        if applied.state_changed:
            self._set_state(applied.next_state)
        for effect in applied.effects:
            self._run(effect)

    def _run(self, effect: Effect) -> None:
        kind = effect.kind
        if kind == "reset_reconnect":
            self._reconnect.reset()
        elif kind == "record_reason":
            self._reconnect.record_reason(effect.reason)
        elif kind == "schedule_reconnect":
            self._schedule_retry()
        elif kind == "start_telemetry":
            if self._adapter is not None:
                self._telemetry.start(self._adapter)
        elif kind == "stop_telemetry":
            self._telemetry.stop()
        elif kind == "reset_telemetry":
            self._reset_telemetry()
        elif kind == "release_adapter":
            self._release_adapter()
        elif kind == "refresh_roster":
            if self.is_connected:
                self._telemetry.refresh_roster()
        elif kind == "refresh_vitals":
            if self.is_connected:
                self._telemetry.refresh_vitals()
        elif kind == "append_chat":
            if effect.message is not None:
                self._hub.publish_chat(effect.message)
        elif kind == "publish_error":
            self._hub.publish_error(effect.error or "Unknown adapter error")
        elif kind == "publish_status":
            self._publish_status()

    def _schedule_retry(self) -> None:
        if self._last_config is None:
            return
        plan = self._reconnect.schedule(self._retry)
        seconds = round(plan.delay_ms / 1000)
        self._hub.publish_chat(
            ChatMessage(
                text=f"Bot disconnected. Will attempt to reconnect in {seconds} seconds (Attempt #{plan.attempt})"
            )
        )

    async def _retry(self) -> None:
        async with self._lock:
            config = self._last_config
            if self._state != SessionState.reconnecting or config is None:
                return
            logger.info("Attempting to reconnect... (attempt #%d)", self._reconnect.state.attempt_count)
            try:
                self._open(config, event="retry")
            except AdapterConstructionError as e:
                logger.error("Error reconnecting: %s", e)
                self._hub.publish_error(f"Failed to reconnect: {e}")
                self._schedule_retry()
                self._publish_status()

    def _reset_telemetry(self) -> None:
        store = self._ctx.store
        store.reset_telemetry()
        self._hub.publish_roster(store.roster)
        self._hub.publish_vitals(store.vitals)

    def _publish_status(self) -> None:
        self._hub.publish_status(self.status())

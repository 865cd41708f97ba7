from __future__ import annotations

from dataclasses import dataclass

from botrelay.admin import AdminCommandRelay, AdminIntent
from botrelay.api.models import ChatMessage, PlayerRecord, SessionConfig, StatusPayload, VitalsSnapshot
from botrelay.core.context import RelayContext
from botrelay.reconnect import ReconnectScheduler
from botrelay.session import SessionController
from botrelay.telemetry import TelemetryPoller
from botrelay.websocket_hub import BroadcastHub


@dataclass(slots=True)
class Relay:
    """The relay's components wired to one context.

    Lifecycle: `start()` on process start, `stop()` on shutdown; each connect
    resets the session in between.
    """

    ctx: RelayContext
    session: SessionController
    telemetry: TelemetryPoller
    reconnect: ReconnectScheduler
    admin: AdminCommandRelay

    @property
    def hub(self) -> BroadcastHub:
        return self.ctx.hub

    async def start(self) -> None:
        await self.session.start()

    async def stop(self) -> None:
        await self.session.stop()
        await self.ctx.hub.close()
        await self.ctx.scheduler.aclose()

    async def settle(self) -> None:
        """Wait for queued adapter events and viewer deliveries to finish."""

        await self.session.drain()
        await self.ctx.hub.flush()

    def status(self) -> StatusPayload:
        return self.session.status()

    async def connect(self, config: SessionConfig) -> None:
        await self.session.connect(config)

    async def disconnect(self) -> bool:
        return await self.session.disconnect()

    def send_chat(self, text: str) -> None:
        self.session.send_chat(text)

    def admin_action(self, intent: AdminIntent) -> ChatMessage:
        return self.admin.perform(intent)

    def request_player_list_refresh(self) -> list[PlayerRecord]:
        if not self.session.is_connected:
            return []
        roster = self.telemetry.refresh_roster()
        return roster if roster is not None else list(self.ctx.store.roster)

    def request_vitals_refresh(self) -> VitalsSnapshot:
        if not self.session.is_connected:
            return VitalsSnapshot.empty()
        vitals = self.telemetry.refresh_vitals()
        return vitals if vitals is not None else self.ctx.store.vitals

    def chat_history(self) -> list[ChatMessage]:
        return self.ctx.store.chat_history()


def build_relay(ctx: RelayContext) -> Relay:
    telemetry = TelemetryPoller(scheduler=ctx.scheduler, hub=ctx.hub, intervals=ctx.telemetry_intervals)
    reconnect = ReconnectScheduler(
        scheduler=ctx.scheduler,
        policy=ctx.reconnect_policy,
        detectors=ctx.detectors,
    )
    session = SessionController(ctx=ctx, telemetry=telemetry, reconnect=reconnect)
    admin = AdminCommandRelay(ctx=ctx, session=session)
    return Relay(ctx=ctx, session=session, telemetry=telemetry, reconnect=reconnect, admin=admin)

from __future__ import annotations

from dataclasses import dataclass, field

from botrelay.adapters.base import AdapterFactory, PrivilegeCheck, has_game_mode_info
from botrelay.config import ReconnectPolicy, RelaySettings, TelemetryIntervals
from botrelay.reconnect import ReasonDetector, default_detectors
from botrelay.relay_store import RelayStore
from botrelay.scheduler import Scheduler
from botrelay.websocket_hub import BroadcastHub


@dataclass(slots=True)
class RelayContext:
    """Process-wide collaborators handed to every relay component.

    Built once at startup; nothing in the relay reaches for module globals.
    """

    settings: RelaySettings
    scheduler: Scheduler
    adapter_factory: AdapterFactory
    store: RelayStore
    hub: BroadcastHub
    reconnect_policy: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    telemetry_intervals: TelemetryIntervals = field(default_factory=TelemetryIntervals)
    detectors: tuple[ReasonDetector, ...] = ()
    privilege_check: PrivilegeCheck = has_game_mode_info


def create_context(
    *,
    settings: RelaySettings,
    scheduler: Scheduler,
    adapter_factory: AdapterFactory,
    reconnect_policy: ReconnectPolicy | None = None,
    telemetry_intervals: TelemetryIntervals | None = None,
    detectors: tuple[ReasonDetector, ...] | None = None,
    privilege_check: PrivilegeCheck | None = None,
) -> RelayContext:
    policy = reconnect_policy or ReconnectPolicy()
    store = RelayStore()
    return RelayContext(
        settings=settings,
        scheduler=scheduler,
        adapter_factory=adapter_factory,
        store=store,
        hub=BroadcastHub(store),
        reconnect_policy=policy,
        telemetry_intervals=telemetry_intervals or TelemetryIntervals(),
        detectors=detectors if detectors is not None else default_detectors(policy),
        privilege_check=privilege_check or has_game_mode_info,
    )

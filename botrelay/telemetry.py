from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from botrelay.adapters.base import ProtocolAdapter
from botrelay.api.models import Experience, GameMode, PlayerRecord, Position, VitalsSnapshot
from botrelay.config import TelemetryIntervals
from botrelay.scheduler import Scheduler, TimerHandle
from botrelay.websocket_hub import BroadcastHub

logger = logging.getLogger(__name__)

# Numeric game modes as sent on the wire.
_GAME_MODES_BY_ID = (GameMode.survival, GameMode.creative, GameMode.adventure, GameMode.spectator)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _number(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _game_mode(raw: Any) -> GameMode | None:
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        return _GAME_MODES_BY_ID[raw] if 0 <= raw < len(_GAME_MODES_BY_ID) else None
    try:
        return GameMode(str(raw).lower())
    except ValueError:
        return None


def snapshot_vitals(adapter: ProtocolAdapter) -> VitalsSnapshot:
    """Build a full vitals snapshot, substituting defaults for anything missing."""

    health = _clamp(_number(_field(adapter, "health")), 0.0, 20.0)
    food = int(_clamp(_number(_field(adapter, "food")), 0, 20))

    entity = _field(adapter, "entity")
    position = None
    raw_pos = _field(entity, "position")
    if raw_pos is not None:
        position = Position(
            x=_number(_field(raw_pos, "x")),
            y=_number(_field(raw_pos, "y")),
            z=_number(_field(raw_pos, "z")),
        )

    experience = None
    raw_xp = _field(adapter, "experience")
    if raw_xp is not None:
        experience = Experience(
            level=int(_number(_field(raw_xp, "level"))),
            points=int(_number(_field(raw_xp, "points"))),
            progress=_clamp(_number(_field(raw_xp, "progress")), 0.0, 1.0),
        )

    raw_armor = _field(adapter, "armor_points")
    armor = int(_number(raw_armor)) if raw_armor is not None else None

    return VitalsSnapshot(
        health=health,
        food=food,
        alive=entity is not None and bool(_field(entity, "is_valid", health > 0)),
        sleeping=bool(_field(adapter, "is_sleeping", False)),
        position=position,
        experience=experience,
        armor=armor,
        game_mode=_game_mode(_field(_field(adapter, "game"), "game_mode")),
    )


def snapshot_roster(adapter: ProtocolAdapter) -> list[PlayerRecord]:
    """Rebuild the full roster: unique by username, sorted by username."""

    own_name = _field(adapter, "username")
    players = _field(adapter, "players") or {}
    entries = players.values() if isinstance(players, Mapping) else players

    by_name: dict[str, PlayerRecord] = {}
    for p in entries:
        username = _field(p, "username")
        if not username:
            continue
        by_name[str(username)] = PlayerRecord(
            username=str(username),
            ping_ms=int(_number(_field(p, "ping"))),
            unique_id=str(_field(p, "uuid") or ""),
            is_self=username == own_name,
        )

    return sorted(by_name.values(), key=lambda r: (r.username.casefold(), r.username))


class TelemetryPoller:
    """Samples roster and vitals from the live adapter while connected."""

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        hub: BroadcastHub,
        intervals: TelemetryIntervals | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._hub = hub
        self._intervals = intervals or TelemetryIntervals()
        self._adapter: ProtocolAdapter | None = None
        self._handles: list[TimerHandle] = []

    @property
    def running(self) -> bool:
        return self._adapter is not None

    def start(self, adapter: ProtocolAdapter) -> None:
        self.stop()
        self._adapter = adapter

        iv = self._intervals
        self._handles = [
            self._scheduler.after(iv.initial_delay_ms, self._roster_tick),
            self._scheduler.every(iv.roster_ms, self._roster_tick),
            self._scheduler.after(iv.initial_delay_ms, self._first_vitals_tick),
        ]

    def stop(self) -> None:
        handles, self._handles = self._handles, []
        for handle in handles:
            handle.cancel()
        self._adapter = None

    def refresh_roster(self) -> list[PlayerRecord] | None:
        adapter = self._adapter
        if adapter is None:
            return None
        try:
            roster = snapshot_roster(adapter)
        except Exception:
            logger.exception("Error updating player list")
            return None
        logger.debug("Updated player list: %d players online", len(roster))
        self._hub.publish_roster(roster)
        return roster

    def refresh_vitals(self) -> VitalsSnapshot | None:
        adapter = self._adapter
        if adapter is None:
            return None
        try:
            vitals = snapshot_vitals(adapter)
        except Exception:
            logger.exception("Error updating bot vitals")
            return None
        self._hub.publish_vitals(vitals)
        return vitals

    async def _roster_tick(self) -> None:
        self.refresh_roster()

    async def _first_vitals_tick(self) -> None:
        self.refresh_vitals()
        # The vitals interval counts from the initial sample.
        if self._adapter is not None:
            self._handles.append(self._scheduler.every(self._intervals.vitals_ms, self._vitals_tick))

    async def _vitals_tick(self) -> None:
        self.refresh_vitals()

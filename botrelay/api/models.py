from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class AuthMode(StrEnum):
    offline = "offline"
    microsoft = "microsoft"
    mojang = "mojang"


class GameMode(StrEnum):
    survival = "survival"
    creative = "creative"
    adventure = "adventure"
    spectator = "spectator"


class SessionState(StrEnum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    reconnecting = "reconnecting"


class SessionConfig(BaseModel):
    """Everything needed to open one adapter instance.

    Immutable: a new connect request replaces it wholesale.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    identity: str = Field(..., min_length=1)
    # Passed through to the adapter untouched; never echoed back to viewers.
    credential: str | None = Field(default=None, repr=False, exclude=True)
    auth_mode: AuthMode = AuthMode.offline
    version: str | None = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class ChatCategory(StrEnum):
    admin = "admin"
    join = "join"
    leave = "leave"
    death = "death"


class ChatMessage(BaseModel):
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    is_system: bool = False
    category: ChatCategory | None = None


class PlayerRecord(BaseModel):
    username: str
    ping_ms: int = 0
    unique_id: str = ""

    # True for the identity this relay is logged in as.
    is_self: bool = False


class Position(BaseModel):
    x: float
    y: float
    z: float


class Experience(BaseModel):
    level: int = 0
    points: int = 0
    progress: float = Field(default=0.0, ge=0.0, le=1.0)


class VitalsSnapshot(BaseModel):
    health: float = Field(default=0.0, ge=0.0, le=20.0)
    food: int = Field(default=0, ge=0, le=20)
    alive: bool = False
    sleeping: bool = False
    position: Position | None = None
    experience: Experience | None = None
    armor: int | None = None
    game_mode: GameMode | None = None

    @classmethod
    def empty(cls) -> "VitalsSnapshot":
        return cls()


class StatusPayload(BaseModel):
    state: SessionState = SessionState.disconnected
    connected: bool = False
    connecting: bool = False
    identity: str | None = None
    server: str | None = None

    # Populated while a retry is pending.
    reconnect_attempt: int = 0
    next_retry_ms: int | None = None


class ErrorNotice(BaseModel):
    message: str


class ConnectRequest(BaseModel):
    server_ip: str | None = None
    server_port: int | None = Field(default=None, ge=1, le=65535)
    username: str | None = None
    auth: AuthMode | None = None


class SendChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=256)


class AdminActionKind(StrEnum):
    self_gamemode = "self_gamemode"
    kick = "kick"
    ban = "ban"
    kill = "kill"
    teleport = "teleport"
    gamemode = "gamemode"


class AdminActionRequest(BaseModel):
    # Left as a plain string so unknown kinds reach the relay and get reported
    # as an intent error instead of a schema error.
    action: str
    target: str | None = None
    reason: str | None = None
    game_mode: GameMode | None = None


class OperationResult(BaseModel):
    success: bool
    message: str = ""

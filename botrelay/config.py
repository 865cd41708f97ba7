from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from botrelay.api.models import AuthMode, SessionConfig
from botrelay.errors import ConfigError


@dataclass(frozen=True, slots=True)
class RelaySettings:
    default_host: str = "localhost"
    default_port: int = 25565
    default_username: str = "WebBot"
    password: str | None = None
    auth: AuthMode = AuthMode.offline
    version: str | None = None

    # "package.module:factory" resolving to an AdapterFactory.
    adapter_path: str | None = None

    http_port: int = 3001
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)

    @property
    def default_server(self) -> str:
        return f"{self.default_host}:{self.default_port}"


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    floor_ms: int = 5_000
    ceiling_ms: int = 300_000
    throttle_min_ms: int = 60_000
    explicit_wait_margin_ms: int = 5_000
    # Attempts that keep the current backoff before doubling kicks in.
    grace_attempts: int = 3


@dataclass(frozen=True, slots=True)
class TelemetryIntervals:
    roster_ms: int = 30_000
    vitals_ms: int = 2_000
    # Lets the adapter populate its roster/entity after login.
    initial_delay_ms: int = 2_000


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _auth_from_env(name: str, default: AuthMode) -> AuthMode:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return AuthMode(raw.strip().lower())
    except ValueError as e:
        allowed = ",".join(m.value for m in AuthMode)
        raise ConfigError(f"{name} must be one of {allowed}, got {raw!r}") from e


def load_dotenv_if_present(*, path: Path | None = None) -> None:
    from dotenv import load_dotenv

    env_path = path or Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)


def settings_from_env() -> RelaySettings:
    return RelaySettings(
        default_host=os.environ.get("MC_SERVER_IP", "localhost"),
        default_port=_int_from_env("MC_SERVER_PORT", 25565),
        default_username=os.environ.get("BOT_USERNAME", "WebBot"),
        password=os.environ.get("BOT_PASSWORD") or None,
        auth=_auth_from_env("BOT_AUTH", AuthMode.offline),
        version=os.environ.get("VERSION") or None,
        adapter_path=os.environ.get("BOTRELAY_ADAPTER") or None,
        http_port=_int_from_env("BOT_SERVER_PORT", 3001),
        log_level=os.environ.get("BOTRELAY_LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(
            o.strip() for o in os.environ.get("BOTRELAY_CORS_ORIGINS", "*").split(",") if o.strip()
        ),
    )


def build_session_config(
    *,
    settings: RelaySettings,
    host: str | None = None,
    port: int | None = None,
    username: str | None = None,
    auth: AuthMode | str | None = None,
) -> SessionConfig:
    """Resolve a connect request against the configured defaults.

    Raises ConfigError if the result is missing a host, port or identity.
    """

    resolved_host = (host or settings.default_host or "").strip()
    resolved_user = (username or settings.default_username or "").strip()
    resolved_port = port if port is not None else settings.default_port

    if not resolved_host:
        raise ConfigError("host is required")
    if not resolved_user:
        raise ConfigError("identity is required")

    try:
        resolved_auth = AuthMode(auth) if auth else settings.auth
        return SessionConfig(
            host=resolved_host,
            port=resolved_port,
            identity=resolved_user,
            credential=settings.password,
            auth_mode=resolved_auth,
            version=settings.version,
        )
    except (ValidationError, ValueError) as e:
        raise ConfigError(str(e)) from e

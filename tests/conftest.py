from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from botrelay.api.models import SessionConfig
from botrelay.config import RelaySettings
from botrelay.core.context import create_context
from botrelay.relay import Relay, build_relay
from helpers import FakeAdapterFactory, ManualScheduler


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs, but never in CI."""

    if os.environ.get("CI"):
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


@pytest.fixture()
def settings() -> RelaySettings:
    return RelaySettings(default_host="mc.example.org", default_port=25565, default_username="WebBot")


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def adapters() -> FakeAdapterFactory:
    return FakeAdapterFactory()


@pytest.fixture()
def session_config() -> SessionConfig:
    return SessionConfig(host="mc.example.org", port=25565, identity="Steve")


@pytest_asyncio.fixture()
async def relay(
    settings: RelaySettings,
    scheduler: ManualScheduler,
    adapters: FakeAdapterFactory,
) -> AsyncGenerator[Relay, None]:
    ctx = create_context(settings=settings, scheduler=scheduler, adapter_factory=adapters)
    r = build_relay(ctx)
    await r.start()
    yield r
    await r.stop()

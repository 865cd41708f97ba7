from __future__ import annotations

import importlib
from typing import cast

from botrelay.adapters.base import AdapterFactory, EventSink, ProtocolAdapter
from botrelay.api.models import SessionConfig
from botrelay.config import RelaySettings
from botrelay.errors import AdapterConstructionError, ConfigError


def load_adapter_factory(path: str) -> AdapterFactory:
    """Import an adapter factory from a "package.module:attribute" path."""

    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Adapter path must look like 'package.module:factory', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import adapter module {module_name!r}: {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigError(f"{path!r} does not name a callable adapter factory")
    return cast(AdapterFactory, factory)


def _unconfigured(config: SessionConfig, emit: EventSink) -> ProtocolAdapter:
    raise AdapterConstructionError("No protocol adapter configured (set BOTRELAY_ADAPTER)")


def create_default_adapter_factory(*, settings: RelaySettings) -> AdapterFactory:
    """Resolve the adapter factory named in settings.

    Without one the relay still starts, but every connect fails with an
    AdapterConstructionError that viewers see as an error notice.
    """

    if not settings.adapter_path:
        return _unconfigured
    return load_adapter_factory(settings.adapter_path)

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from botrelay.adapters.factory import create_default_adapter_factory
from botrelay.api.routes import router
from botrelay.config import RelaySettings, load_dotenv_if_present, settings_from_env
from botrelay.core.context import create_context
from botrelay.relay import Relay, build_relay
from botrelay.scheduler import AsyncioScheduler

logger = logging.getLogger(__name__)

RelayFactory = Callable[[RelaySettings], Relay]


def default_relay(settings: RelaySettings) -> Relay:
    ctx = create_context(
        settings=settings,
        scheduler=AsyncioScheduler(),
        adapter_factory=create_default_adapter_factory(settings=settings),
    )
    return build_relay(ctx)


def create_app(*, settings: RelaySettings | None = None, relay_factory: RelayFactory | None = None) -> FastAPI:
    if settings is None:
        load_dotenv_if_present()
        settings = settings_from_env()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="botrelay", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(router)
    make_relay = relay_factory or default_relay

    @app.on_event("startup")
    async def _startup() -> None:
        relay = make_relay(settings)
        await relay.start()
        app.state.relay = relay
        logger.info("Relay ready (default server %s)", settings.default_server)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        relay: Relay | None = getattr(app.state, "relay", None)
        if relay is not None:
            await relay.stop()
            app.state.relay = None

    @app.get("/info")
    async def info() -> dict[str, str]:
        return {"name": "botrelay", "version": "0.1.0"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings_from_env().http_port)

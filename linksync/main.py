from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from linksync.api import health_api, sync_api
from linksync.config import _env, _env_bool
from linksync.services.container import ServiceContainer

logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None, start_engine: Optional[bool] = None) -> FastAPI:
    """
    Operations API for the sync core.

    Run with: uvicorn linksync.main:create_app --factory
    Background timers start only when LINKSYNC_START_ENGINE=true (or start_engine=True).
    """
    logging.basicConfig(level=_env("LINKSYNC_LOG_LEVEL", "INFO").upper())

    container = container or ServiceContainer()
    if start_engine is None:
        start_engine = _env_bool("LINKSYNC_START_ENGINE", "0")

    app = FastAPI(title="linksync", version="0.1.0")
    app.state.container = container

    app.include_router(health_api.router)
    app.include_router(sync_api.router)

    if start_engine:
        @app.on_event("startup")
        def _start() -> None:
            container.engine.start()

        @app.on_event("shutdown")
        def _stop() -> None:
            container.engine.stop()

    return app

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI
from loguru import logger

from storesync.api.routes_health import router as health_router
from storesync.api.routes_sync import router as sync_router
from storesync.cloud.client import CloudClient
from storesync.config import settings
from storesync.sync.engine import SyncEngine
from storesync.sync.stores import SqlLookups, SqlQueueStore, SqlRunLog, SqlStoreConfig


@dataclass(slots=True)
class SyncServices:
    engine: Any
    queue: Any
    run_log: Any
    store_config: Any
    autostart: bool = True


def build_default_services() -> SyncServices:
    queue = SqlQueueStore()
    run_log = SqlRunLog()
    store_config = SqlStoreConfig()
    engine = SyncEngine(
        queue=queue,
        run_log=run_log,
        store_config=store_config,
        cloud=CloudClient(),
        lookups=SqlLookups(),
    )
    return SyncServices(
        engine=engine,
        queue=queue,
        run_log=run_log,
        store_config=store_config,
        autostart=settings.sync_enabled,
    )


def create_app(services: SyncServices | None = None) -> FastAPI:
    app = FastAPI(title="storesync")
    app.include_router(health_router)
    app.include_router(sync_router)
    app.state.services = services

    @app.on_event("startup")
    async def on_startup() -> None:
        if app.state.services is None:
            app.state.services = build_default_services()
        current: SyncServices = app.state.services
        if current.autostart:
            current.engine.start(settings.sync_interval_sec, settings.heartbeat_interval_sec)
        else:
            logger.info("sync engine autostart disabled")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        current: SyncServices | None = app.state.services
        if current is not None:
            current.engine.stop()

    return app


app = create_app()

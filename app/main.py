from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.subscriptions import build_default_store
from logging_config import configure_logging
from services.bridge import build_default_bridge
from storage.influx import build_default_sink

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    bridge = build_default_bridge()
    try:
        bridge.start()
    except (OSError, ValueError) as exc:
        # /health and /subscriptions/reload stay available
        logger.error("Bridge failed to start: %s", exc)
    try:
        yield
    finally:
        bridge.stop()
        bridge.sink.close()
        build_default_bridge.cache_clear()
        build_default_sink.cache_clear()
        build_default_store.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="MQTT InfluxDB Bridge",
        description="Forwards MQTT messages to InfluxDB as line protocol measurements.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()

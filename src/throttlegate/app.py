"""
Script: app.py
Created: 2026-10-18
Purpose: FastAPI application factory and lifespan management for ThrottleGate
Keywords: fastapi, app, lifespan, cors, metrics-loop
Status: active
Prerequisites:
  - fastapi
Changelog:
  - 2026-10-18: Lifespan wires the SQLite store, Influx sink and metrics loop
See-Also: endpoints.py, controller.py, cli.py
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from . import __version__
from .config import THROTTLEGATE_DB, THROTTLEGATE_METRICS_INTERVAL
from .controller import AdmissionController
from .db import SqliteBatchLedger, SqliteSettingsStore, cleanup_old_batches, init_db
from .endpoints import router
from .metrics import InfluxLineSink


def build_default_controller(db_path: str = THROTTLEGATE_DB) -> AdmissionController:
    return AdmissionController.create(
        store=SqliteSettingsStore(db_path),
        sink=InfluxLineSink(),
        ledger=SqliteBatchLedger(db_path),
    )


def cleanup_every_ticks(interval: int = THROTTLEGATE_METRICS_INTERVAL) -> int:
    """Number of metrics ticks between ledger cleanups (roughly hourly)."""
    return max(1, 3600 // max(1, interval))


async def _metrics_loop(controller: AdmissionController, db_path: str):
    tick = 0
    cleanup_every = cleanup_every_ticks()
    while True:
        await asyncio.sleep(THROTTLEGATE_METRICS_INTERVAL)
        tick += 1
        controller.reporter.schedule_flush()
        if tick % cleanup_every == 0:
            try:
                deleted = await cleanup_old_batches(db_path)
                if deleted:
                    logger.info(f"[ThrottleGate] Cleaned up {deleted} old batch rows")
            except Exception as e:
                logger.error(f"[ThrottleGate] Batch cleanup failed: {type(e).__name__}: {e}")


def create_app(
    controller: Optional[AdmissionController] = None,
    db_path: str = THROTTLEGATE_DB,
) -> FastAPI:
    """
    Build the app. With no controller, the lifespan creates the SQLite-backed
    one and starts the background metrics loop; an injected controller is
    used as-is.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if controller is not None:
            app.state.controller = controller
            yield
            return

        await init_db(db_path)
        default = build_default_controller(db_path)
        await default.maintenance.load()
        await default.config_store.load()
        app.state.controller = default
        logger.info(f"[ThrottleGate] Policy: {default.config_store.get_cached().description}")

        metrics_task = asyncio.create_task(_metrics_loop(default, db_path))

        yield

        metrics_task.cancel()

    app = FastAPI(
        title="ThrottleGate",
        description="Admission control for camera events bound for image analysis",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def no_store(request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate"
        return response

    app.include_router(router)
    return app


app = create_app()

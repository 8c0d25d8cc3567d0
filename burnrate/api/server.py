"""FastAPI server exposing reconciled usage to dashboards and widgets."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from burnrate.api.usage_routes import broadcast_change, usage_router
from burnrate.config import settings
from burnrate.monitor.scheduler import MonitorScheduler, create_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build monitors for every profile and start refreshing them."""
    scheduler: MonitorScheduler | None = getattr(app.state, "scheduler", None)
    if scheduler is None:
        scheduler = create_scheduler(settings)
        app.state.scheduler = scheduler

    unsubscribers = [m.subscribe(broadcast_change) for m in scheduler.monitors.values()]

    try:
        await scheduler.start()
    except Exception:
        logger.exception("Refresh scheduler failed to start")

    yield

    await scheduler.stop()
    for unsubscribe in unsubscribers:
        unsubscribe()


def create_app(scheduler: MonitorScheduler | None = None) -> FastAPI:
    """Create the API application.

    A pre-built ``scheduler`` (tests, embedding) is used as-is; otherwise
    one is built from settings at startup.
    """
    app = FastAPI(title="BurnRate Claude Usage Monitor", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    if scheduler is not None:
        app.state.scheduler = scheduler
    app.include_router(usage_router, prefix="/api")
    return app


app = create_app()

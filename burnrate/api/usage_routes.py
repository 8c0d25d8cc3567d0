"""API routes for reconciled usage.

Endpoints:
  GET  /api/health                    liveness and scheduler state
  GET  /api/profiles                  every profile with its headline figures
  GET  /api/profiles/{name}/usage     full summary and display strings
  POST /api/profiles/{name}/refresh   run a cycle now (skipped if in flight)
  GET  /api/usage/stream              SSE stream of summary changes
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from burnrate.monitor.refresher import ProfileMonitor
from burnrate.monitor.scheduler import MonitorScheduler

logger = logging.getLogger(__name__)

usage_router = APIRouter()

# ── SSE subscriber list (in-memory) ──────────────────────────────────────────

_sse_queues: list[asyncio.Queue[dict[str, Any]]] = []


def broadcast_change(monitor: ProfileMonitor, changed: list[str]) -> None:
    """Push a summary change to all SSE subscribers."""
    data = {
        "profile": monitor.name,
        "version": monitor.version,
        "changed": changed,
        "percent_text": monitor.view.percent_text,
        "summary": monitor.summary.to_dict(),
    }
    for q in _sse_queues:
        try:
            q.put_nowait(data)
        except asyncio.QueueFull:
            pass  # slow consumer, drop


def _scheduler(request: Request) -> MonitorScheduler:
    return request.app.state.scheduler


def _monitor(request: Request, name: str) -> ProfileMonitor:
    monitor = _scheduler(request).get(name)
    if monitor is None:
        raise HTTPException(status_code=404, detail=f"Profile not found: {name}")
    return monitor


def _profile_entry(monitor: ProfileMonitor) -> dict[str, Any]:
    view = monitor.view
    return {
        "name": monitor.name,
        "path": str(monitor.profile.path),
        "version": monitor.version,
        "percent_text": view.percent_text,
        "plan_name": view.plan_name,
        "status": view.status,
        "is_live": monitor.summary.is_live,
        "in_flight": monitor.in_flight,
        "last_error": monitor.last_error,
    }


# ── Endpoints ────────────────────────────────────────────────────────────────


@usage_router.get("/health")
def health(request: Request) -> dict[str, Any]:
    scheduler = _scheduler(request)
    return {
        "status": "ok",
        "scheduler_running": scheduler.running,
        "profiles": len(scheduler.monitors),
    }


@usage_router.get("/profiles")
def list_profiles(request: Request) -> dict[str, Any]:
    monitors = _scheduler(request).monitors.values()
    return {"profiles": [_profile_entry(m) for m in monitors]}


@usage_router.get("/profiles/{name}/usage")
def get_usage(name: str, request: Request) -> dict[str, Any]:
    monitor = _monitor(request, name)
    return {
        "profile": monitor.name,
        "version": monitor.version,
        "summary": monitor.summary.to_dict(),
        "view": asdict(monitor.view),
    }


@usage_router.post("/profiles/{name}/refresh")
async def refresh_profile(name: str, request: Request) -> dict[str, Any]:
    monitor = _monitor(request, name)
    refreshed = await monitor.refresh()
    return {
        "profile": monitor.name,
        "refreshed": refreshed,
        "version": monitor.version,
        "last_error": monitor.last_error,
    }


@usage_router.get("/usage/stream")
async def usage_stream(request: Request) -> StreamingResponse:
    """Server-sent events: one ``data:`` frame per summary change."""
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=100)
    _sse_queues.append(queue)

    async def _events() -> AsyncIterator[str]:
        try:
            # Current state first so a new subscriber does not wait a cycle
            for monitor in _scheduler(request).monitors.values():
                yield f"data: {json.dumps(_profile_entry(monitor))}\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=15.0)
                    yield f"data: {json.dumps(data)}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            if queue in _sse_queues:
                _sse_queues.remove(queue)

    return StreamingResponse(_events(), media_type="text/event-stream")

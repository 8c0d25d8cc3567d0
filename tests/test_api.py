"""Tests for the HTTP API."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from burnrate.api.server import create_app
from burnrate.api.usage_routes import _sse_queues, broadcast_change
from burnrate.monitor.refresher import ProfileMonitor
from burnrate.monitor.scheduler import MonitorScheduler
from burnrate.profiles.discovery import ProfileConfig
from burnrate.usage.models import UsageSummary
from burnrate.usage.quota import QuotaResolver
from conftest import stats_cache_payload, user_event, write_credentials, write_stats_cache, write_transcript


@pytest.fixture
def monitor(claude_dir: Path, quotas: QuotaResolver, now: datetime) -> ProfileMonitor:
    write_credentials(claude_dir)
    write_stats_cache(claude_dir, stats_cache_payload(now.date().isoformat(), tokens_by_model={"m": 500_000}))
    write_transcript(claude_dir, [user_event(now)])
    monitor = ProfileMonitor(ProfileConfig(name="Default", path=claude_dir), quotas, clock=lambda: now)
    asyncio.run(monitor.refresh())
    return monitor


@pytest.fixture
def client(monitor: ProfileMonitor) -> TestClient:
    scheduler = MonitorScheduler([monitor], interval=3600.0)
    app = create_app(scheduler)
    with TestClient(app) as c:
        yield c


class TestUsageAPI:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["profiles"] == 1
        assert data["scheduler_running"] is True

    def test_list_profiles(self, client: TestClient) -> None:
        resp = client.get("/api/profiles")
        assert resp.status_code == 200
        profiles = resp.json()["profiles"]
        assert [p["name"] for p in profiles] == ["Default"]
        assert "percent_text" in profiles[0]

    def test_refresh_and_usage(self, client: TestClient) -> None:
        resp = client.post("/api/profiles/Default/refresh")
        assert resp.status_code == 200

        resp = client.get("/api/profiles/Default/usage")
        assert resp.status_code == 200
        data = resp.json()
        assert data["summary"]["estimated_percentage"] == 20.0
        assert data["summary"]["today_messages"] == 1
        assert data["view"]["percent_text"] == "20%"
        assert data["view"]["plan_name"] == "Max 5x"

    def test_credentials_never_exposed(self, client: TestClient) -> None:
        client.post("/api/profiles/Default/refresh")
        body = client.get("/api/profiles/Default/usage").text
        assert "sk-ant" not in body

    def test_unknown_profile(self, client: TestClient) -> None:
        assert client.get("/api/profiles/Nobody/usage").status_code == 404
        assert client.post("/api/profiles/Nobody/refresh").status_code == 404


def test_broadcast_reaches_subscribers(profile: ProfileConfig, quotas: QuotaResolver) -> None:
    monitor = ProfileMonitor(profile, quotas)
    queue: asyncio.Queue = asyncio.Queue(maxsize=1)
    _sse_queues.append(queue)
    try:
        monitor.subscribe(broadcast_change)
        monitor.publish(UsageSummary(today_messages=2))
        monitor.publish(UsageSummary(today_messages=3))  # queue full: dropped
        event = queue.get_nowait()
    finally:
        _sse_queues.remove(queue)

    assert event["profile"] == "Default"
    assert event["changed"] == ["today_messages"]
    assert event["summary"]["today_messages"] == 2


def test_restarted_app_subscribes_once(monitor: ProfileMonitor) -> None:
    app = create_app(MonitorScheduler([monitor], interval=3600.0))
    with TestClient(app):
        assert monitor._subscribers == [broadcast_change]
    with TestClient(app):
        assert monitor._subscribers == [broadcast_change]
    assert monitor._subscribers == []


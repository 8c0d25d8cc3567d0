"""Refresh scheduler: runs each profile's refresh cycle on an interval.

One asyncio task per profile. Profiles never share a loop, so a slow
profile cannot delay another. Stopping (or removing a profile) cancels the
task, which abandons any in-flight live-usage request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from burnrate.monitor.refresher import ProfileMonitor
from burnrate.profiles.discovery import DEFAULT_PROFILE, ProfileConfig, discover_profiles, expand_path
from burnrate.usage.json_reader import RetryPolicy
from burnrate.usage.live import LiveUsageClient
from burnrate.usage.quota import load_quota_table

logger = logging.getLogger(__name__)


class MonitorScheduler:
    """Schedules refresh cycles for all monitored profiles."""

    def __init__(self, monitors: Iterable[ProfileMonitor], interval: float = 60.0) -> None:
        self.monitors: dict[str, ProfileMonitor] = {m.name: m for m in monitors}
        self.interval = interval
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def get(self, name: str) -> ProfileMonitor | None:
        return self.monitors.get(name)

    async def start(self) -> None:
        """Start one refresh loop per profile."""
        if self._running:
            return
        self._running = True

        if not self.monitors:
            logger.info("No profiles to monitor; scheduler idle")
            return

        for monitor in self.monitors.values():
            self._spawn(monitor)

        logger.info(
            "Refresh scheduler started: %d profile(s) every %ss",
            len(self.monitors), self.interval,
        )

    async def stop(self) -> None:
        """Cancel every loop and wait for them to unwind."""
        self._running = False
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Refresh scheduler stopped")

    async def add_profile(self, monitor: ProfileMonitor) -> None:
        if monitor.name in self.monitors:
            raise ValueError(f"Profile '{monitor.name}' is already monitored")
        self.monitors[monitor.name] = monitor
        if self._running:
            self._spawn(monitor)

    async def remove_profile(self, name: str) -> bool:
        """Stop monitoring ``name``; cancels its loop if running."""
        monitor = self.monitors.pop(name, None)
        task = self._tasks.pop(name, None)
        if task:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        return monitor is not None

    async def refresh_all(self) -> dict[str, bool]:
        """Run one cycle for every profile concurrently (manual trigger)."""
        names = list(self.monitors)
        results = await asyncio.gather(*(self.monitors[n].refresh() for n in names))
        return dict(zip(names, results))

    def _spawn(self, monitor: ProfileMonitor) -> None:
        self._tasks[monitor.name] = asyncio.create_task(
            self._refresh_loop(monitor), name=f"refresh-{monitor.name}",
        )

    async def _refresh_loop(self, monitor: ProfileMonitor) -> None:
        """Refresh immediately, then at every interval until cancelled."""
        while self._running:
            try:
                await monitor.refresh()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Refresh loop error: %s", monitor.name)
                await asyncio.sleep(min(self.interval, 60))


def create_scheduler(settings: Any) -> MonitorScheduler:
    """Build monitors for every discovered profile from ``settings``."""
    profiles = discover_profiles(settings.profiles or None)
    if not profiles and not settings.profiles:
        # No .credentials.json anywhere: still watch the plain data directory
        fallback = expand_path(settings.claude_dir)
        if fallback.is_dir():
            profiles = [ProfileConfig(name=DEFAULT_PROFILE, path=fallback)]

    quotas = load_quota_table(Path(settings.plan_limits_file) if settings.plan_limits_file else None)
    policy = RetryPolicy.from_settings(settings)

    monitors = []
    for profile in profiles:
        live_client = None
        if settings.oracle_enabled:
            live_client = LiveUsageClient(
                profile.path,
                url=settings.oracle_url,
                beta_header=settings.oracle_beta_header,
                timeout=settings.oracle_timeout_seconds,
                expiry_buffer_seconds=settings.token_expiry_buffer_seconds,
                policy=policy,
            )
        monitors.append(
            ProfileMonitor(
                profile,
                quotas,
                live_client=live_client,
                history_days=settings.history_days,
                policy=policy,
            )
        )
    return MonitorScheduler(monitors, interval=float(settings.refresh_interval_seconds))

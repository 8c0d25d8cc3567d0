"""Per-profile refresh pipeline.

One cycle fans out three independent reads (stats cache, event log,
credentials + live usage), joins them, reconciles, and publishes the result
into the profile's long-lived UsageSummary. A profile never runs two cycles
at once: a trigger that arrives while a cycle is in flight is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from burnrate.profiles.discovery import ProfileConfig
from burnrate.usage.event_log import EventScan, scan_event_log
from burnrate.usage.json_reader import NO_RETRY, RetryPolicy
from burnrate.usage.live import LiveUsage, LiveUsageClient, OAuthTokenInfo, read_credentials
from burnrate.usage.models import UsageSummary
from burnrate.usage.projector import SummaryView, project
from burnrate.usage.quota import QuotaResolver
from burnrate.usage.reconcile import reconcile
from burnrate.usage.stats_cache import STATS_CACHE_FILE, AggregateSnapshot, read_stats_cache

logger = logging.getLogger(__name__)

Subscriber = Callable[["ProfileMonitor", list[str]], Any]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProfileMonitor:
    """Owns one profile's UsageSummary and the cycle that refreshes it."""

    def __init__(
        self,
        profile: ProfileConfig,
        quotas: QuotaResolver,
        *,
        live_client: LiveUsageClient | None = None,
        history_days: int = 7,
        policy: RetryPolicy = NO_RETRY,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.profile = profile
        self.quotas = quotas
        self.live_client = live_client
        self.history_days = history_days
        self.policy = policy
        self._clock = clock

        self.summary = UsageSummary()
        self.version = 0
        self.last_error: str | None = None
        self._subscribers: list[Subscriber] = []
        self._refreshing = False

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def in_flight(self) -> bool:
        return self._refreshing

    @property
    def view(self) -> SummaryView:
        return project(self.summary, self.profile.name)

    # -- change notification ---------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback(monitor, changed_fields)`` after each change.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, fresh: UsageSummary) -> list[str]:
        """Copy ``fresh`` into the live summary and notify on change."""
        changed = self.summary.update_from(fresh)
        if not changed:
            return changed
        self.version += 1
        for callback in list(self._subscribers):
            try:
                callback(self, changed)
            except Exception:
                logger.exception("Usage subscriber error (%s)", self.name)
        return changed

    # -- refresh cycle ---------------------------------------------------------

    async def refresh(self) -> bool:
        """Run one cycle. Returns False when skipped or failed."""
        if self._refreshing:
            logger.debug("Refresh for %s already in flight; skipping", self.name)
            return False

        self._refreshing = True
        try:
            fresh = await self.compute()
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            logger.exception("Refresh failed for %s", self.name)
            return False
        finally:
            self._refreshing = False

        self.last_error = None
        changed = self.publish(fresh)
        logger.debug(
            "Refreshed %s: %.1f%% (%s), %d field(s) changed",
            self.name, self.summary.estimated_percentage,
            "live" if self.summary.is_live else "est.", len(changed),
        )
        return True

    async def compute(self) -> UsageSummary:
        """Fan out the reads, join, and reconcile into a fresh summary."""
        now = self._clock()
        cutoff = now - timedelta(days=self.history_days)
        root = self.profile.path
        loop = asyncio.get_running_loop()

        snapshot, scan, (credentials, live) = await asyncio.gather(
            loop.run_in_executor(None, read_stats_cache, root / STATS_CACHE_FILE, self.policy),
            loop.run_in_executor(None, scan_event_log, root / "projects", cutoff),
            self._credentials_and_live(),
        )
        return self._merge(snapshot, scan, credentials, live, now)

    async def _credentials_and_live(self) -> tuple[OAuthTokenInfo | None, LiveUsage | None]:
        loop = asyncio.get_running_loop()
        credentials = await loop.run_in_executor(None, read_credentials, self.profile.path, self.policy)
        if self.live_client is None:
            return credentials, None
        return credentials, await self.live_client.usage_for(credentials)

    def _merge(
        self,
        snapshot: AggregateSnapshot | None,
        scan: EventScan,
        credentials: OAuthTokenInfo | None,
        live: LiveUsage | None,
        now: datetime,
    ) -> UsageSummary:
        tier = (credentials.rateLimitTier if credentials else None) or ""
        subscription = (credentials.subscriptionType if credentials else None) or ""
        quota = self.quotas.resolve_first(tier, subscription)

        summary = reconcile(
            snapshot,
            scan,
            quota,
            today=now.date(),
            now=now,
            rate_limit_tier=tier,
            subscription_type=subscription,
        )
        if live is not None:
            live.apply_to(summary)
        return summary

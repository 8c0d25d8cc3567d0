"""Merge the aggregate snapshot with the live event log into a UsageSummary.

The snapshot is recomputed on a delay and can lag; the event log is current
but may miss files or straddle a day boundary. For today's figures the
engine trusts neither exclusively and takes the larger of the two, which is
safe for counters that only grow within a day. Older days come from the
snapshot alone.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from burnrate.usage.event_log import EventScan
from burnrate.usage.models import (
    UNKNOWN_PERCENT,
    DailyActivitySummary,
    UsageSummary,
    clamp_percent,
)
from burnrate.usage.projector import format_time_saved
from burnrate.usage.stats_cache import AggregateSnapshot

logger = logging.getLogger(__name__)

WINDOW_DAYS = 7
SESSION_WINDOW = timedelta(hours=5)


def merge_counts(aggregate: int, event_log: int) -> int:
    """Take-the-higher merge for a monotonically increasing daily counter."""
    return max(0, aggregate, event_log)


def merge_model_tokens(aggregate: dict[str, int], event_log: dict[str, int]) -> dict[str, int]:
    """Per-model max of two token maps, keys lower-cased."""
    merged: dict[str, int] = {}
    for source in (aggregate, event_log):
        for model, tokens in source.items():
            key = model.lower()
            merged[key] = max(merged.get(key, 0), max(0, tokens))
    return merged


def compute_percentage(used: int, quota: int | None) -> float:
    if quota is None or quota <= 0:
        return UNKNOWN_PERCENT
    return clamp_percent(used / quota * 100)


def window_days(today: date) -> list[date]:
    """The trailing 7 calendar days, oldest first, today last."""
    return [today - timedelta(days=offset) for offset in range(WINDOW_DAYS - 1, -1, -1)]


def _parse_iso_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def reconcile(
    snapshot: AggregateSnapshot | None,
    scan: EventScan,
    quota: int | None,
    *,
    today: date,
    now: datetime,
    rate_limit_tier: str = "",
    subscription_type: str = "",
) -> UsageSummary:
    """Build a fresh UsageSummary from both sources.

    Args:
        snapshot: Parsed stats cache, or None when absent/unusable.
        scan: Event log scan covering at least today (UTC).
        quota: Weekly token quota, or None when the tier is unknown.
        today: Current UTC date; every day boundary is a UTC boundary.
        now: Current UTC time, used for refresh stamp and reset estimates.
    """
    today_str = today.isoformat()

    # 1-2. today's counters: snapshot baseline, event log wins when higher
    activity = snapshot.activity_for(today_str) if snapshot else None
    today_messages = merge_counts(activity.messageCount if activity else 0, scan.message_count(today))
    today_sessions = merge_counts(activity.sessionCount if activity else 0, scan.session_count(today))
    today_tool_calls = merge_counts(activity.toolCallCount if activity else 0, scan.tool_call_count(today))

    # 3. today's tokens per model
    aggregate_tokens = snapshot.tokens_for(today_str) if snapshot else {}
    model_breakdown = merge_model_tokens(aggregate_tokens, scan.output_tokens_by_model(today))
    today_tokens = sum(model_breakdown.values())

    # 4 + 6. rolling window and the daily series share the same per-day view
    daily: list[DailyActivitySummary] = []
    for day in window_days(today):
        if day == today:
            daily.append(DailyActivitySummary(day, today_messages, today_tokens))
            continue
        day_str = day.isoformat()
        day_activity = snapshot.activity_for(day_str) if snapshot else None
        daily.append(
            DailyActivitySummary(
                day,
                max(0, day_activity.messageCount) if day_activity else 0,
                snapshot.total_tokens_for(day_str) if snapshot else 0,
            )
        )
    weekly_tokens = sum(d.tokens for d in daily)

    # 5. percentage of quota
    if snapshot is None and scan.empty:
        percentage = UNKNOWN_PERCENT
    else:
        percentage = compute_percentage(weekly_tokens, quota)

    # Local reset estimates: the window frees up once its oldest usage ages out
    first_active = next((d.date for d in daily if d.tokens > 0), None)
    weekly_resets_at = (
        datetime.combine(first_active, time.min, tzinfo=timezone.utc) + timedelta(days=WINDOW_DAYS)
        if first_active
        else None
    )
    oldest_session_event = scan.oldest_since(now - SESSION_WINDOW)
    session_resets_at = oldest_session_event + SESSION_WINDOW if oldest_session_event else None

    last_data_candidates = [
        d for d in (_parse_iso_date(snapshot.lastComputedDate) if snapshot else None, scan.newest_day()) if d
    ]

    summary = UsageSummary(
        estimated_percentage=percentage,
        weekly_tokens_used=weekly_tokens,
        weekly_token_limit=quota or 0,
        rate_limit_tier=rate_limit_tier,
        subscription_type=subscription_type,
        today_messages=today_messages,
        today_sessions=today_sessions,
        today_tool_calls=today_tool_calls,
        today_tokens=today_tokens,
        total_sessions=max(0, snapshot.totalSessions) if snapshot else 0,
        total_messages=max(0, snapshot.totalMessages) if snapshot else 0,
        model_breakdown=model_breakdown,
        daily_activity=daily,
        last_data_date=max(last_data_candidates, default=None),
        last_refresh_time=now,
        estimated_cost_usd=snapshot.total_cost_usd() if snapshot else 0.0,
        time_saved_formatted=format_time_saved(snapshot.totalSpeculationTimeSavedMs if snapshot else 0),
        is_live=False,
        session_percentage=UNKNOWN_PERCENT,
        session_resets_at=session_resets_at,
        weekly_percentage=percentage,
        weekly_resets_at=weekly_resets_at,
    )
    logger.debug(
        "Reconciled %s: %d/%s weekly tokens (%.1f%%), today %d msgs / %d sessions",
        today_str, weekly_tokens, quota, percentage, today_messages, today_sessions,
    )
    return summary

"""Tests for merging the stats cache with the event log."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from burnrate.usage.event_log import EventRecord, EventScan
from burnrate.usage.models import UNKNOWN_PERCENT
from burnrate.usage.projector import project
from burnrate.usage.reconcile import (
    compute_percentage,
    merge_counts,
    merge_model_tokens,
    reconcile,
    window_days,
)
from burnrate.usage.stats_cache import AggregateSnapshot
from conftest import stats_cache_payload

TODAY = date(2026, 2, 19)
NOW = datetime(2026, 2, 19, 15, 30, tzinfo=timezone.utc)
QUOTA = 2_500_000


def _scan(events: list[EventRecord] | None = None) -> EventScan:
    return EventScan(cutoff=NOW - timedelta(days=7), events=events or [])


def _snapshot(**kwargs) -> AggregateSnapshot:
    return AggregateSnapshot.model_validate(stats_cache_payload(TODAY.isoformat(), **kwargs))


def _assistant(tokens: int, model: str = "claude-opus-4", conv: str = "p/c1", at: datetime = NOW) -> EventRecord:
    return EventRecord(at, "assistant", conv, model=model, output_tokens=tokens)


class TestMergeHelpers:
    @pytest.mark.parametrize("a,b", [(0, 0), (5, 3), (3, 5), (100, 100), (-4, 2)])
    def test_merge_counts_is_max(self, a: int, b: int) -> None:
        merged = merge_counts(a, b)
        assert merged >= a and merged >= b
        assert merged in (max(a, b), 0)

    def test_merge_model_tokens_case_insensitive(self) -> None:
        merged = merge_model_tokens({"Claude-Opus-4": 100}, {"claude-opus-4": 150, "claude-haiku": 5})
        assert merged == {"claude-opus-4": 150, "claude-haiku": 5}

    def test_compute_percentage(self) -> None:
        assert compute_percentage(1_250_000, QUOTA) == 50.0
        assert compute_percentage(5_000_000, QUOTA) == 100.0
        assert compute_percentage(10, None) == UNKNOWN_PERCENT
        assert compute_percentage(10, 0) == UNKNOWN_PERCENT

    def test_window_days_oldest_first(self) -> None:
        days = window_days(TODAY)
        assert len(days) == 7
        assert days[0] == TODAY - timedelta(days=6)
        assert days[-1] == TODAY


class TestReconcile:
    def test_event_log_only_counts_messages_and_sessions(self) -> None:
        events = [EventRecord(NOW - timedelta(minutes=i), "user", f"p/c{i % 3}") for i in range(10)]
        summary = reconcile(None, _scan(events), QUOTA, today=TODAY, now=NOW)
        assert summary.today_messages == 10
        assert summary.today_sessions == 3

    def test_aggregate_higher_than_event_log(self) -> None:
        snapshot = _snapshot(tokens_by_model={"claude-opus-4": 100_000})
        summary = reconcile(snapshot, _scan([_assistant(50_000)]), QUOTA, today=TODAY, now=NOW)
        assert summary.today_tokens == 100_000

    def test_event_log_higher_than_aggregate(self) -> None:
        snapshot = _snapshot(messages=2, sessions=1, tokens_by_model={"claude-opus-4": 100})
        events = [_assistant(400), EventRecord(NOW, "user", "p/c2"), EventRecord(NOW, "user", "p/c3")]
        summary = reconcile(snapshot, _scan(events), QUOTA, today=TODAY, now=NOW)
        assert summary.today_messages == 3
        assert summary.today_sessions == 3
        assert summary.model_breakdown == {"claude-opus-4": 400}

    def test_merged_counts_never_below_either_source(self) -> None:
        snapshot = _snapshot(messages=7, sessions=2, tool_calls=9, tokens_by_model={"claude-opus-4": 10})
        events = [_assistant(20), EventRecord(NOW, "user", "p/x")]
        summary = reconcile(snapshot, _scan(events), QUOTA, today=TODAY, now=NOW)
        scan = _scan(events)
        assert summary.today_messages >= max(7, scan.message_count(TODAY))
        assert summary.today_sessions >= max(2, scan.session_count(TODAY))
        assert summary.today_tool_calls >= 9

    def test_model_names_merge_case_insensitively(self) -> None:
        snapshot = _snapshot(tokens_by_model={"Claude-Opus-4": 100})
        summary = reconcile(snapshot, _scan([_assistant(150, model="claude-opus-4")]), QUOTA, today=TODAY, now=NOW)
        assert summary.model_breakdown == {"claude-opus-4": 150}

    def test_full_quota_reaches_limit(self) -> None:
        snapshot = _snapshot(tokens_by_model={"claude-opus-4": 2_500_000})
        summary = reconcile(snapshot, _scan(), QUOTA, today=TODAY, now=NOW, rate_limit_tier="default_claude_max_5x")
        assert summary.estimated_percentage == 100.0
        view = project(summary, "Default")
        assert view.percent_text == "Limit"
        assert "Limit" in view.tooltip

    def test_half_quota(self) -> None:
        snapshot = _snapshot(tokens_by_model={"claude-opus-4": 1_250_000})
        summary = reconcile(snapshot, _scan(), QUOTA, today=TODAY, now=NOW)
        assert summary.estimated_percentage == 50.0

    def test_weekly_window_sums_seven_days(self) -> None:
        payload = stats_cache_payload(TODAY.isoformat(), tokens_by_model={"claude-opus-4": 100})
        payload["dailyModelTokens"] += [
            {"date": (TODAY - timedelta(days=3)).isoformat(), "tokensByModel": {"claude-opus-4": 1_000}},
            {"date": (TODAY - timedelta(days=6)).isoformat(), "tokensByModel": {"claude-opus-4": 10_000}},
            {"date": (TODAY - timedelta(days=7)).isoformat(), "tokensByModel": {"claude-opus-4": 999_999}},
        ]
        snapshot = AggregateSnapshot.model_validate(payload)
        summary = reconcile(snapshot, _scan(), QUOTA, today=TODAY, now=NOW)
        assert summary.weekly_tokens_used == 11_100
        assert [d.tokens for d in summary.daily_activity] == [10_000, 0, 0, 1_000, 0, 0, 100]
        assert summary.daily_activity[-1].date == TODAY

    def test_unknown_quota(self) -> None:
        summary = reconcile(_snapshot(), _scan(), None, today=TODAY, now=NOW)
        assert summary.estimated_percentage == UNKNOWN_PERCENT
        assert summary.weekly_token_limit == 0

    def test_no_data_at_all_is_unknown(self) -> None:
        summary = reconcile(None, _scan(), QUOTA, today=TODAY, now=NOW)
        assert summary.estimated_percentage == UNKNOWN_PERCENT
        assert summary.today_messages == 0
        assert len(summary.daily_activity) == 7

    def test_empty_snapshot_is_zero_percent(self) -> None:
        summary = reconcile(AggregateSnapshot(), _scan(), QUOTA, today=TODAY, now=NOW)
        assert summary.estimated_percentage == 0.0

    def test_percentage_bounds(self) -> None:
        snapshot = _snapshot(tokens_by_model={"claude-opus-4": 50_000_000})
        summary = reconcile(snapshot, _scan(), QUOTA, today=TODAY, now=NOW)
        assert 0.0 <= summary.estimated_percentage <= 100.0

    def test_reset_estimates(self) -> None:
        payload = stats_cache_payload(TODAY.isoformat())
        payload["dailyModelTokens"].append(
            {"date": (TODAY - timedelta(days=2)).isoformat(), "tokensByModel": {"claude-opus-4": 10}},
        )
        events = [_assistant(5, at=NOW - timedelta(hours=6)), _assistant(5, at=NOW - timedelta(hours=1))]
        summary = reconcile(AggregateSnapshot.model_validate(payload), _scan(events), QUOTA, today=TODAY, now=NOW)
        assert summary.weekly_resets_at == datetime(2026, 2, 24, tzinfo=timezone.utc)
        assert summary.session_resets_at == NOW + timedelta(hours=4)
        assert summary.session_percentage == UNKNOWN_PERCENT
        assert summary.is_live is False

    def test_carries_snapshot_totals(self) -> None:
        payload = stats_cache_payload(
            "2026-02-18",
            totalSpeculationTimeSavedMs=90 * 60_000,
            modelUsage={"claude-opus-4": {"costUSD": 2.5}},
        )
        payload["totalSessions"] = 40
        payload["totalMessages"] = 800
        summary = reconcile(
            AggregateSnapshot.model_validate(payload),
            _scan([EventRecord(NOW, "user", "p/c")]),
            QUOTA, today=TODAY, now=NOW,
        )
        assert summary.total_sessions == 40
        assert summary.total_messages == 800
        assert summary.estimated_cost_usd == 2.5
        assert summary.time_saved_formatted == "1.5h"
        assert summary.last_data_date == TODAY
        assert summary.last_refresh_time == NOW

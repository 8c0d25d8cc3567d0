"""Usage summary models consumed by the monitor, CLI and API."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any

UNKNOWN_PERCENT = -1.0
NO_TIME_SAVED = "—"


def clamp_percent(value: float) -> float:
    """Clamp to [0, 100]; the unknown sentinel passes through unchanged."""
    if value == UNKNOWN_PERCENT:
        return value
    return max(0.0, min(100.0, value))


@dataclass(frozen=True)
class DailyActivitySummary:
    """One day in the 7-day activity series."""

    date: date
    messages: int
    tokens: int


@dataclass
class UsageSummary:
    """Reconciled usage for one profile.

    A monitor keeps one instance alive for the lifetime of the profile and
    copies each freshly computed summary into it with ``update_from`` so
    subscribers always hold the same object.
    """

    estimated_percentage: float = 0.0
    weekly_tokens_used: int = 0
    weekly_token_limit: int = 0
    rate_limit_tier: str = ""
    subscription_type: str = ""

    today_messages: int = 0
    today_sessions: int = 0
    today_tool_calls: int = 0
    today_tokens: int = 0

    total_sessions: int = 0
    total_messages: int = 0

    model_breakdown: dict[str, int] = field(default_factory=dict)
    daily_activity: list[DailyActivitySummary] = field(default_factory=list)

    last_data_date: date | None = None
    last_refresh_time: datetime | None = None
    estimated_cost_usd: float = 0.0
    time_saved_formatted: str = NO_TIME_SAVED

    is_live: bool = False
    session_percentage: float = 0.0
    session_resets_at: datetime | None = None
    weekly_percentage: float = 0.0
    weekly_resets_at: datetime | None = None

    def update_from(self, source: UsageSummary) -> list[str]:
        """Copy every field from ``source``; return the names that changed."""
        changed: list[str] = []
        for f in fields(self):
            new = getattr(source, f.name)
            if isinstance(new, dict):
                new = dict(new)
            elif isinstance(new, list):
                new = list(new)
            if getattr(self, f.name) != new:
                setattr(self, f.name, new)
                changed.append(f.name)
        return changed

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation."""

        def _iso(v: date | datetime | None) -> str | None:
            return v.isoformat() if v is not None else None

        return {
            "estimated_percentage": self.estimated_percentage,
            "weekly_tokens_used": self.weekly_tokens_used,
            "weekly_token_limit": self.weekly_token_limit,
            "rate_limit_tier": self.rate_limit_tier,
            "subscription_type": self.subscription_type,
            "today_messages": self.today_messages,
            "today_sessions": self.today_sessions,
            "today_tool_calls": self.today_tool_calls,
            "today_tokens": self.today_tokens,
            "total_sessions": self.total_sessions,
            "total_messages": self.total_messages,
            "model_breakdown": dict(self.model_breakdown),
            "daily_activity": [
                {"date": d.date.isoformat(), "messages": d.messages, "tokens": d.tokens}
                for d in self.daily_activity
            ],
            "last_data_date": _iso(self.last_data_date),
            "last_refresh_time": _iso(self.last_refresh_time),
            "estimated_cost_usd": round(self.estimated_cost_usd, 4),
            "time_saved_formatted": self.time_saved_formatted,
            "is_live": self.is_live,
            "session_percentage": self.session_percentage,
            "session_resets_at": _iso(self.session_resets_at),
            "weekly_percentage": self.weekly_percentage,
            "weekly_resets_at": _iso(self.weekly_resets_at),
        }

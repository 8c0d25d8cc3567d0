"""Presentation strings derived from a UsageSummary.

Everything here is a pure function of its arguments so the same summary
always projects to the same strings.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from burnrate.usage.models import NO_TIME_SAVED, UsageSummary

LIMIT_THRESHOLD = 99.5
WARN_THRESHOLD = 50.0
CRITICAL_THRESHOLD = 80.0


@dataclass(frozen=True)
class SummaryView:
    """Display-ready strings for one profile."""

    percent_text: str
    session_percent_text: str
    weekly_percent_text: str
    plan_name: str
    status: str  # "ok" | "warn" | "critical" | "unknown"
    weekly_tokens_text: str
    weekly_limit_text: str
    today_tokens_text: str
    session_resets_in: str
    weekly_resets_in: str
    tooltip: str


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _trim(value: float) -> str:
    text = f"{value:.1f}"
    return text[:-2] if text.endswith(".0") else text


def format_percent(value: float, prefix: str = "") -> str:
    """``"?"`` for unknown, ``"Limit"`` at the cap, else a rounded percentage."""
    if value < 0 or math.isnan(value):
        return "?"
    if value >= LIMIT_THRESHOLD:
        return "Limit"
    return f"{prefix}{_round_half_up(value)}%"


def format_tokens(tokens: int) -> str:
    """Abbreviate a token count: ``950``, ``1.5K``, ``2.5M``."""
    if tokens < 1_000:
        return str(max(0, tokens))
    if tokens < 1_000_000:
        return f"{_trim(tokens / 1_000)}K"
    return f"{_trim(tokens / 1_000_000)}M"


def format_time_saved(ms: int) -> str:
    if ms <= 0:
        return NO_TIME_SAVED
    minutes = ms / 60_000
    if minutes < 1:
        return "<1m"
    if minutes < 60:
        return f"{int(minutes)}m"
    return f"{_trim(minutes / 60)}h"


def format_reset(resets_at: datetime | None, now: datetime | None) -> str:
    """Time until reset like ``2h 13m`` or ``6d 4h``; empty when unknown."""
    if resets_at is None or now is None:
        return ""
    seconds = int((resets_at - now).total_seconds())
    if seconds <= 0:
        return "now"
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    if days > 0:
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours > 0:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    return f"{max(1, minutes)}m"


def status_level(value: float) -> str:
    if value < 0 or value > 100:
        return "unknown"
    if value > CRITICAL_THRESHOLD:
        return "critical"
    if value > WARN_THRESHOLD:
        return "warn"
    return "ok"


def plan_display_name(rate_limit_tier: str, subscription_type: str = "") -> str:
    """Friendly plan name from the credential's tier and subscription type."""
    tier = (rate_limit_tier or "").lower()
    sub = (subscription_type or "").lower()

    if sub == "team":
        return "Team Premium" if "max" in tier else "Team"
    if sub == "enterprise":
        return "Enterprise"
    if "max_20x" in tier:
        return "Max 20x"
    if "max_5x" in tier:
        return "Max 5x"
    if sub == "max" or "max" in tier:
        return "Max"
    if sub == "pro" or tier == "pro":
        return "Pro"
    if sub == "free" or tier == "free":
        return "Free"
    if tier:
        name = tier.removeprefix("default_").removeprefix("claude_").replace("_", " ").strip()
        return name.title() if name else rate_limit_tier
    return "Unknown"


def build_tooltip(summary: UsageSummary, profile_name: str = "") -> str:
    plan = plan_display_name(summary.rate_limit_tier, summary.subscription_type)
    header = f"{profile_name} ({plan})" if profile_name else plan

    if summary.estimated_percentage < 0:
        return f"{header}\nUsage: Unknown"

    source = "(Live)" if summary.is_live else "(Est.)"
    lines = [header, f"Weekly: {format_percent(summary.estimated_percentage)} {source}"]
    if summary.is_live and summary.session_percentage >= 0:
        lines.append(f"Session: {format_percent(summary.session_percentage)}")
    lines.append(f"Today: {summary.today_messages} msgs, {format_tokens(summary.today_tokens)} tokens")
    return "\n".join(lines)


def project(summary: UsageSummary, profile_name: str = "") -> SummaryView:
    """Derive every display string for ``summary``."""
    now = summary.last_refresh_time
    return SummaryView(
        percent_text=format_percent(summary.estimated_percentage),
        session_percent_text=format_percent(summary.session_percentage),
        weekly_percent_text=format_percent(summary.weekly_percentage),
        plan_name=plan_display_name(summary.rate_limit_tier, summary.subscription_type),
        status=status_level(summary.estimated_percentage),
        weekly_tokens_text=format_tokens(summary.weekly_tokens_used),
        weekly_limit_text=format_tokens(summary.weekly_token_limit) if summary.weekly_token_limit else "?",
        today_tokens_text=format_tokens(summary.today_tokens),
        session_resets_in=format_reset(summary.session_resets_at, now),
        weekly_resets_in=format_reset(summary.weekly_resets_at, now),
        tooltip=build_tooltip(summary, profile_name),
    )

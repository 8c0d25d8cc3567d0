"""Shared test fixtures: fake Claude data directories."""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from burnrate.profiles.discovery import ProfileConfig
from burnrate.usage.quota import QuotaResolver


# -- Builders ------------------------------------------------------------------


def iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def user_event(ts: datetime, text: str = "hello") -> dict[str, Any]:
    return {
        "type": "user",
        "message": {"role": "user", "content": text},
        "timestamp": iso(ts),
    }


def assistant_event(
    ts: datetime,
    model: str = "claude-sonnet-4-6",
    output_tokens: int = 100,
    input_tokens: int = 10,
    tool_uses: int = 0,
) -> dict[str, Any]:
    content: list[dict[str, Any]] = [{"type": "text", "text": "ok"}]
    content += [{"type": "tool_use", "id": f"tool-{i}", "name": "Read", "input": {}} for i in range(tool_uses)]
    return {
        "type": "assistant",
        "message": {
            "role": "assistant",
            "model": model,
            "content": content,
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        },
        "timestamp": iso(ts),
    }


def write_transcript(
    claude_dir: Path,
    entries: list[dict[str, Any] | str],
    project: str = "-home-user-app",
    conversation: str = "conv-001",
) -> Path:
    """Write a JSONL transcript; string entries are written verbatim."""
    path = claude_dir / "projects" / project / f"{conversation}.jsonl"
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [e if isinstance(e, str) else json.dumps(e) for e in entries]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def stats_cache_payload(
    day: str,
    messages: int = 0,
    sessions: int = 0,
    tool_calls: int = 0,
    tokens_by_model: dict[str, int] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "version": 2,
        "lastComputedDate": day,
        "dailyActivity": [
            {"date": day, "messageCount": messages, "sessionCount": sessions, "toolCallCount": tool_calls},
        ],
        "dailyModelTokens": [{"date": day, "tokensByModel": tokens_by_model or {}}],
        "modelUsage": {},
        "totalSessions": sessions,
        "totalMessages": messages,
    }
    payload.update(extra)
    return payload


def write_stats_cache(claude_dir: Path, payload: dict[str, Any] | str) -> Path:
    path = claude_dir / "stats-cache.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    text = payload if isinstance(payload, str) else json.dumps(payload)
    path.write_text(text, encoding="utf-8")
    return path


def write_credentials(
    claude_dir: Path,
    expires_in_seconds: float = 3600,
    tier: str = "default_claude_max_5x",
    subscription: str = "max",
    token: str = "sk-ant-oat01-test-token",
) -> Path:
    path = claude_dir / ".credentials.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "claudeAiOauth": {
            "accessToken": token,
            "refreshToken": "sk-ant-ort01-refresh",
            "expiresAt": int((time.time() + expires_in_seconds) * 1000),
            "scopes": ["user:inference", "user:profile"],
            "subscriptionType": subscription,
            "rateLimitTier": tier,
        }
    }
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


# -- Fixtures ------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def claude_dir(tmp_path: Path) -> Path:
    """An empty fake ~/.claude directory."""
    d = tmp_path / ".claude"
    (d / "projects").mkdir(parents=True)
    return d


@pytest.fixture
def profile(claude_dir: Path) -> ProfileConfig:
    return ProfileConfig(name="Default", path=claude_dir)


@pytest.fixture
def quotas() -> QuotaResolver:
    return QuotaResolver({"default_claude_max_5x": 2_500_000, "pro": 2_500_000})

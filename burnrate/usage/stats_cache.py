"""Reader for Claude Code's aggregate statistics (``stats-cache.json``).

Claude Code recomputes this file on a delay, so it can lag behind the live
transcripts by a day or more. Field names mirror the file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError

from burnrate.usage.json_reader import NO_RETRY, ReadError, RetryPolicy, read_json

logger = logging.getLogger(__name__)

STATS_CACHE_FILE = "stats-cache.json"


# ── Payload models ───────────────────────────────────────────────────────────


class DailyActivityEntry(BaseModel):
    date: str | None = None
    messageCount: int = 0
    sessionCount: int = 0
    toolCallCount: int = 0


class DailyModelTokensEntry(BaseModel):
    date: str | None = None
    tokensByModel: dict[str, int] = {}


class ModelUsageEntry(BaseModel):
    inputTokens: int = 0
    outputTokens: int = 0
    cacheReadInputTokens: int = 0
    cacheCreationInputTokens: int = 0
    webSearchRequests: int = 0
    costUSD: float = 0.0
    contextWindow: int = 0
    maxOutputTokens: int = 0


class LongestSessionEntry(BaseModel):
    sessionId: str | None = None
    duration: int = 0
    messageCount: int = 0
    timestamp: str | None = None


class AggregateSnapshot(BaseModel):
    """Parsed ``stats-cache.json`` (schema version 2)."""

    version: int = 0
    lastComputedDate: str | None = None
    dailyActivity: list[DailyActivityEntry] = []
    dailyModelTokens: list[DailyModelTokensEntry] = []
    modelUsage: dict[str, ModelUsageEntry] = {}
    totalSessions: int = 0
    totalMessages: int = 0
    longestSession: LongestSessionEntry | None = None
    firstSessionDate: str | None = None
    hourCounts: dict[str, int] = {}
    totalSpeculationTimeSavedMs: int = 0

    # -- lookups ---------------------------------------------------------------

    def activity_for(self, day: str) -> DailyActivityEntry | None:
        """Activity entry for an ISO date, or None when the day is absent."""
        return next((a for a in self.dailyActivity if a.date == day), None)

    def tokens_for(self, day: str) -> dict[str, int]:
        """Tokens by lower-cased model name for an ISO date.

        Model names differing only in case are summed. Duplicate entries for
        the same day are summed too.
        """
        merged: dict[str, int] = {}
        for entry in self.dailyModelTokens:
            if entry.date != day:
                continue
            for model, tokens in entry.tokensByModel.items():
                key = model.lower()
                merged[key] = merged.get(key, 0) + max(0, tokens)
        return merged

    def total_tokens_for(self, day: str) -> int:
        return sum(self.tokens_for(day).values())

    def total_cost_usd(self) -> float:
        return sum(max(0.0, m.costUSD) for m in self.modelUsage.values())


# ── Reader ───────────────────────────────────────────────────────────────────


def read_stats_cache(path: Path, policy: RetryPolicy = NO_RETRY) -> AggregateSnapshot | None:
    """Load the aggregate snapshot, or None when it is absent or unusable."""
    result = read_json(path, policy)
    if not result.ok:
        if result.error is ReadError.MISSING:
            logger.debug("No stats cache at %s", path)
        else:
            logger.warning("Ignoring unreadable stats cache (%s): %s", result.error.value, result.detail)
        return None

    if not isinstance(result.value, dict):
        logger.warning("Ignoring stats cache %s: expected an object, got %s", path, type(result.value).__name__)
        return None

    try:
        return AggregateSnapshot.model_validate(result.value)
    except ValidationError as e:
        logger.warning("Ignoring malformed stats cache %s: %d validation errors", path, e.error_count())
        return None

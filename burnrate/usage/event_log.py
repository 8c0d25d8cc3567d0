"""Scan Claude Code conversation transcripts for recent activity.

Each conversation is an append-only JSONL file under
``<claude_dir>/projects/<project>/<conversation>.jsonl``. Every line is one
event (a user message or an assistant response). Lines are parsed on their
own: a bad line is skipped and the rest of the file still counts.

Events are bucketed by the date of their UTC timestamp, never by file.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

EVENT_TYPES = ("user", "assistant")
SYNTHETIC_MODEL = "<synthetic>"


@dataclass(frozen=True)
class EventRecord:
    """A single logged interaction."""

    timestamp: datetime  # always UTC
    type: str  # "user" | "assistant"
    conversation: str  # path relative to projects/, without suffix
    model: str | None = None  # lower-cased, assistant only
    input_tokens: int = 0
    output_tokens: int = 0
    tool_calls: int = 0

    @property
    def day(self) -> date:
        return self.timestamp.date()


@dataclass
class EventScan:
    """All events at or after ``cutoff``, plus scan diagnostics."""

    cutoff: datetime
    events: list[EventRecord] = field(default_factory=list)
    files_scanned: int = 0
    lines_skipped: int = 0

    @property
    def empty(self) -> bool:
        return not self.events

    def events_on(self, day: date) -> list[EventRecord]:
        return [e for e in self.events if e.day == day]

    def message_count(self, day: date) -> int:
        return len(self.events_on(day))

    def session_count(self, day: date) -> int:
        """Distinct conversations with at least one event on ``day``."""
        return len({e.conversation for e in self.events_on(day)})

    def tool_call_count(self, day: date) -> int:
        return sum(e.tool_calls for e in self.events_on(day))

    def output_tokens_by_model(self, day: date) -> dict[str, int]:
        """Assistant output tokens per (lower-cased) model for ``day``."""
        totals: dict[str, int] = {}
        for e in self.events_on(day):
            if e.type != "assistant" or not e.model or e.model == SYNTHETIC_MODEL:
                continue
            totals[e.model] = totals.get(e.model, 0) + e.output_tokens
        return totals

    def newest_day(self) -> date | None:
        return max((e.day for e in self.events), default=None)

    def oldest_since(self, since: datetime) -> datetime | None:
        """Earliest event timestamp at or after ``since``."""
        return min((e.timestamp for e in self.events if e.timestamp >= since), default=None)


# -- Line parsing --------------------------------------------------------------


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if not isinstance(value, str) or not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(0, int(value))


def _count_tool_calls(content: Any) -> int:
    if not isinstance(content, list):
        return 0
    return sum(1 for block in content if isinstance(block, dict) and block.get("type") == "tool_use")


def parse_event(entry: Any, conversation: str) -> EventRecord | None:
    """Build an EventRecord from one decoded JSONL line, or None to skip it."""
    if not isinstance(entry, dict):
        return None
    event_type = entry.get("type")
    if event_type not in EVENT_TYPES:
        return None
    ts = parse_timestamp(entry.get("timestamp"))
    if ts is None:
        return None

    message = entry.get("message")
    if not isinstance(message, dict):
        message = {}

    if event_type == "user":
        return EventRecord(timestamp=ts, type="user", conversation=conversation)

    model = message.get("model")
    usage = message.get("usage")
    if not isinstance(usage, dict):
        usage = {}
    return EventRecord(
        timestamp=ts,
        type="assistant",
        conversation=conversation,
        model=model.lower() if isinstance(model, str) and model else None,
        input_tokens=_non_negative_int(usage.get("input_tokens")),
        output_tokens=_non_negative_int(usage.get("output_tokens")),
        tool_calls=_count_tool_calls(message.get("content")),
    )


def _iter_file_lines(path: Path) -> Iterator[str]:
    """Yield non-empty lines from a file, silently handling errors."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield line
    except OSError as e:
        logger.debug("Could not read %s: %s", path, e)
        return


# -- Scanner -------------------------------------------------------------------


def scan_event_log(projects_dir: Path, cutoff: datetime) -> EventScan:
    """Collect every event at or after ``cutoff`` under ``projects_dir``."""
    scan = EventScan(cutoff=cutoff)
    if not projects_dir.is_dir():
        return scan

    try:
        jsonl_files = sorted(projects_dir.rglob("*.jsonl"))
    except OSError as e:
        logger.warning("Could not list %s: %s", projects_dir, e)
        return scan

    for jsonl_file in jsonl_files:
        # Quick stat check, skip files not modified in the window
        try:
            mtime = datetime.fromtimestamp(jsonl_file.stat().st_mtime, tz=timezone.utc)
        except OSError:
            continue
        if mtime < cutoff:
            continue

        conversation = jsonl_file.relative_to(projects_dir).with_suffix("").as_posix()
        scan.files_scanned += 1

        for line in _iter_file_lines(jsonl_file):
            try:
                entry = json.loads(line)
            except (ValueError, RecursionError):
                scan.lines_skipped += 1
                continue

            try:
                event = parse_event(entry, conversation)
            except (ValueError, TypeError, OverflowError) as e:
                logger.debug("Skipping unparseable event in %s: %s", jsonl_file, e)
                event = None
            if event is None:
                scan.lines_skipped += 1
                continue
            if event.timestamp >= cutoff:
                scan.events.append(event)

    logger.debug(
        "Scanned %d transcripts under %s: %d events, %d lines skipped",
        scan.files_scanned, projects_dir, len(scan.events), scan.lines_skipped,
    )
    return scan

"""Retrying JSON file reader.

Claude Code rewrites its data files while we poll them, so a read can hit a
half-written or locked file. Reads return an explicit ``ReadResult`` instead
of raising; transient I/O failures are retried by a ``RetryPolicy`` that the
caller passes in.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ReadError(str, Enum):
    MISSING = "missing"
    MALFORMED = "malformed"
    IO = "io"


@dataclass(frozen=True)
class ReadResult:
    """Outcome of a file read: either ``value`` or an ``error`` kind."""

    value: Any = None
    error: ReadError | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def transient(self) -> bool:
        return self.error is ReadError.IO


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with linear backoff (delay * attempt)."""

    attempts: int = 3
    delay_seconds: float = 0.2

    @classmethod
    def from_settings(cls, settings: Any) -> RetryPolicy:
        return cls(
            attempts=max(1, settings.file_read_attempts),
            delay_seconds=settings.file_read_delay_ms / 1000,
        )


NO_RETRY = RetryPolicy(attempts=1, delay_seconds=0.0)


def with_retries(
    policy: RetryPolicy,
    op: Callable[[], ReadResult],
    sleep: Callable[[float], None] = time.sleep,
) -> ReadResult:
    """Run ``op`` until it succeeds, fails permanently, or attempts run out."""
    result = ReadResult(error=ReadError.IO, detail="not attempted")
    for attempt in range(1, policy.attempts + 1):
        result = op()
        if not result.transient:
            return result
        if attempt < policy.attempts:
            logger.debug(
                "Transient read failure (attempt %d/%d): %s",
                attempt, policy.attempts, result.detail,
            )
            sleep(policy.delay_seconds * attempt)
    return result


def read_json_once(path: Path) -> ReadResult:
    """Single attempt at loading ``path`` as JSON."""
    try:
        # utf-8-sig tolerates a BOM written by Windows editors
        text = path.read_text(encoding="utf-8-sig")
    except FileNotFoundError:
        return ReadResult(error=ReadError.MISSING, detail=str(path))
    except IsADirectoryError:
        return ReadResult(error=ReadError.MISSING, detail=f"{path} is a directory")
    except OSError as e:
        return ReadResult(error=ReadError.IO, detail=f"{path}: {e}")
    except UnicodeDecodeError as e:
        return ReadResult(error=ReadError.MALFORMED, detail=f"{path}: {e}")

    if not text.strip():
        # An empty file usually means a writer truncated it and has not
        # finished yet, so it is worth another look.
        return ReadResult(error=ReadError.IO, detail=f"{path} is empty")

    try:
        return ReadResult(value=json.loads(text))
    except (json.JSONDecodeError, RecursionError) as e:
        return ReadResult(error=ReadError.MALFORMED, detail=f"{path}: {e}")


def read_json(path: Path, policy: RetryPolicy = NO_RETRY) -> ReadResult:
    """Load ``path`` as JSON, retrying transient failures per ``policy``."""
    return with_retries(policy, lambda: read_json_once(path))

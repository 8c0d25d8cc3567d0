"""Quota table: maps a subscription / rate-limit tier to a weekly token quota.

Anthropic does not publish exact numbers; these are estimates supplied as
static configuration in ``plan_limits.yaml``::

    plan_limits:
      default_claude_max_5x: 2500000
      pro: 2500000
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PLAN_LIMITS: dict[str, int] = {
    "default_claude_max_5x": 2_500_000,
    "default_claude_max_20x": 10_000_000,
    "default_raven": 1_000_000,
    "pro": 2_500_000,
}


class QuotaResolver:
    """Exact-match tier lookup over an immutable table.

    ``resolve`` never raises: an unknown, empty or non-positive entry is
    reported as ``None`` (unknown quota), never as zero.
    """

    def __init__(self, limits: Mapping[str, int] | None = None) -> None:
        table = DEFAULT_PLAN_LIMITS if limits is None else limits
        self._table: Mapping[str, int] = MappingProxyType(dict(table))

    @property
    def table(self) -> Mapping[str, int]:
        return self._table

    def resolve(self, tier: str | None) -> int | None:
        if not tier:
            return None
        quota = self._table.get(tier)
        if quota is None or quota <= 0:
            return None
        return quota

    def resolve_first(self, *tiers: str | None) -> int | None:
        """First known quota among ``tiers`` (rate-limit tier, then plan)."""
        for tier in tiers:
            quota = self.resolve(tier)
            if quota is not None:
                return quota
        if any(tiers):
            logger.warning("No quota configured for tier(s) %s", ", ".join(repr(t) for t in tiers if t))
        return None


def _parse_limits(raw: Any) -> dict[str, int]:
    limits: dict[str, int] = {}
    if not isinstance(raw, dict):
        return limits
    section = raw.get("plan_limits", raw)
    if not isinstance(section, dict):
        return limits
    for tier, value in section.items():
        try:
            quota = int(value)
        except (TypeError, ValueError):
            logger.warning("Skipping malformed plan limit %r: %r", tier, value)
            continue
        if isinstance(value, bool) or quota <= 0:
            logger.warning("Skipping non-positive plan limit %r: %r", tier, value)
            continue
        limits[str(tier)] = quota
    return limits


def load_quota_table(path: Path | None) -> QuotaResolver:
    """Load plan limits from YAML; fall back to the built-in table."""
    if path is None or not path.exists():
        if path is not None:
            logger.info("Plan limits file not found (%s); using built-in defaults", path)
        return QuotaResolver()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to parse %s: %s; using built-in defaults", path, e)
        return QuotaResolver()

    limits = _parse_limits(raw)
    if not limits:
        logger.warning("No usable plan limits in %s; using built-in defaults", path)
        return QuotaResolver()

    logger.info("Loaded %d plan limits from %s", len(limits), path)
    return QuotaResolver(limits)

"""Profile discovery: which Claude data directories to monitor.

Explicitly configured profiles win. Otherwise the home directory is scanned
for ``.claude*`` directories that hold a ``.credentials.json``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "Default"


@dataclass(frozen=True)
class ProfileConfig:
    """A named Claude data directory."""

    name: str
    path: Path


def expand_path(raw: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(raw)))


def _profile_name(dir_name: str) -> str:
    if dir_name == ".claude":
        return DEFAULT_PROFILE
    name = dir_name.replace(".claude-", "", 1).replace(".claude", "", 1)
    return name[:1].upper() + name[1:] if name else dir_name


def discover_profiles(
    configured: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> list[ProfileConfig]:
    """Resolve the profiles to monitor.

    Args:
        configured: Explicit ``name -> path`` mapping. Paths may use ``~`` and
            environment variables; non-existent directories are dropped.
        home: Directory to auto-scan when nothing is configured.
    """
    if configured:
        profiles = []
        for name, raw_path in configured.items():
            path = expand_path(raw_path)
            if path.is_dir():
                profiles.append(ProfileConfig(name=name, path=path))
            else:
                logger.warning("Configured profile %r points to missing directory %s", name, path)
        return profiles

    home = home or Path.home()
    try:
        candidates = sorted(d for d in home.glob(".claude*") if d.is_dir())
    except OSError as e:
        logger.warning("Could not scan %s for profiles: %s", home, e)
        return []

    profiles = [
        ProfileConfig(name=_profile_name(d.name), path=d)
        for d in candidates
        if (d / ".credentials.json").is_file()
    ]
    profiles.sort(key=lambda p: (p.name != DEFAULT_PROFILE, p.name))
    logger.info("Discovered %d profile(s) under %s", len(profiles), home)
    return profiles

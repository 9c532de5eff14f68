from __future__ import annotations

import os
from pathlib import Path


def expand_path(path: str | Path) -> Path:
    """Expand a leading `~` against the current home directory."""

    s = str(path)
    if s == "~" or s.startswith("~/"):
        return Path.home() / s[2:]
    return Path(s)


def config_dir() -> Path:
    override = os.environ.get("SKILLYARD_HOME")
    if override:
        return Path(override).expanduser().resolve()
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / "skillyard"


def config_path() -> Path:
    return config_dir() / "config.toml"


def registry_path() -> Path:
    return config_dir() / "registry.json"


def skills_dir() -> Path:
    """Central store: one authoritative copy per managed skill."""

    return config_dir() / "skills"


def snapshots_dir() -> Path:
    return config_dir() / "snapshots"

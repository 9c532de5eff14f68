from __future__ import annotations

import difflib
from pathlib import Path

from .frontmatter import MARKER_FILE


def _read(path: Path) -> list[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace").splitlines(keepends=True)
    except FileNotFoundError:
        return []


def unified_diff(old: str, new: str, *, old_label: str = "a", new_label: str = "b") -> list[str]:
    """Unified diff lines (without trailing newlines); empty when identical."""

    return [
        line.rstrip("\n")
        for line in difflib.unified_diff(
            old.splitlines(keepends=True),
            new.splitlines(keepends=True),
            fromfile=old_label,
            tofile=new_label,
        )
    ]


def diff_markers(old_dir: Path, new_dir: Path, *, old_label: str, new_label: str) -> list[str]:
    """Diff of the SKILL.md files of two copies of a skill."""

    return [
        line.rstrip("\n")
        for line in difflib.unified_diff(
            _read(old_dir / MARKER_FILE),
            _read(new_dir / MARKER_FILE),
            fromfile=f"{old_label}/{MARKER_FILE}",
            tofile=f"{new_label}/{MARKER_FILE}",
        )
    ]

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


MARKER_FILE = "SKILL.md"


@dataclass(frozen=True)
class SkillMetadata:
    name: str | None = None
    description: str | None = None
    version: str | None = None


def read_frontmatter(text: str) -> dict:
    """Parse a leading `---` YAML block. Malformed or absent front-matter yields {}."""

    if not text.startswith("---"):
        return {}
    parts = text.split("---", 2)
    if len(parts) < 3:
        return {}
    try:
        data = yaml.safe_load(parts[1]) or {}
    except yaml.YAMLError:
        return {}
    return data if isinstance(data, dict) else {}


def _opt_str(v: object) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def parse_metadata(text: str) -> SkillMetadata:
    fm = read_frontmatter(text)
    return SkillMetadata(
        name=_opt_str(fm.get("name")),
        description=_opt_str(fm.get("description")),
        version=_opt_str(fm.get("version")),
    )


def has_marker(skill_dir: Path) -> bool:
    return (skill_dir / MARKER_FILE).is_file()


def read_metadata(skill_dir: Path) -> SkillMetadata:
    """Metadata of `skill_dir/SKILL.md`; undecodable text counts as no metadata."""

    try:
        text = (skill_dir / MARKER_FILE).read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return SkillMetadata()
    return parse_metadata(text)

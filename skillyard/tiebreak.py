"""Winner suggestion for conflicting copies of a skill.

Kept out of matrix.py on purpose: it reads wall-clock metadata (mtime) and
front-matter versions, while matrix classification is purely content based.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .frontmatter import MARKER_FILE, read_metadata


@dataclass(frozen=True)
class Candidate:
    agent_id: str
    path: Path  # skill directory


@dataclass(frozen=True)
class CandidateInfo:
    agent_id: str
    version: str | None
    mtime: float


def _version_parts(v: str) -> list[int]:
    parts: list[int] = []
    for seg in v.lstrip("vV").split("."):
        m = re.match(r"\d+", seg)
        parts.append(int(m.group(0)) if m else 0)
    return parts


def compare_versions(a: str, b: str) -> int:
    pa, pb = _version_parts(a), _version_parts(b)
    n = max(len(pa), len(pb))
    pa += [0] * (n - len(pa))
    pb += [0] * (n - len(pb))
    return (pa > pb) - (pa < pb)


def describe(candidates: Sequence[Candidate]) -> list[CandidateInfo]:
    out: list[CandidateInfo] = []
    for c in candidates:
        marker = c.path / MARKER_FILE
        out.append(
            CandidateInfo(
                agent_id=c.agent_id,
                version=read_metadata(c.path).version if marker.exists() else None,
                mtime=marker.stat().st_mtime if marker.exists() else 0.0,
            )
        )
    return out


def suggest_winner(candidates: Sequence[Candidate]) -> str:
    """Agent id of the copy that looks newest.

    Highest front-matter `version` when every copy declares one, otherwise the
    most recently modified SKILL.md. Ties keep the earlier candidate.
    """

    if not candidates:
        raise ValueError("suggest_winner: no candidates")
    infos = describe(candidates)
    best = infos[0]
    if all(i.version for i in infos):
        for i in infos[1:]:
            if compare_versions(i.version or "", best.version or "") > 0:
                best = i
    else:
        for i in infos[1:]:
            if i.mtime > best.mtime:
                best = i
    return best.agent_id

"""Cross-agent skill matrix and sync-status classification.

Reconciliation works on the union of skill names visible across all detected
agents. A row exists for every name seen in at least one agent and covers
every detected agent. Status depends only on the set of present hashes:

- no copy present      -> missing
- exactly one copy     -> unique
- 2+ copies, one hash  -> synced
- 2+ copies, >1 hashes -> conflict

There is no notion of "newer" here; see tiebreak.py for that.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from .agents import AgentRegistry
from .models import ABSENT, Agent, MatrixCell, SkillMatrixRow, SkillStatus


def classify_status(cells: Iterable[MatrixCell]) -> SkillStatus:
    hashes = [c.hash for c in cells if c.present]
    if not hashes:
        return "missing"
    if len(hashes) == 1:
        return "unique"
    return "synced" if len(set(hashes)) == 1 else "conflict"


def build_rows(
    observed: Mapping[str, Mapping[str, str]],
    agent_ids: Iterable[str],
) -> list[SkillMatrixRow]:
    """Build sorted rows from `{skill_name: {agent_id: tree_hash}}`.

    Pure function: `observed` must already hold the complete discovery result.
    """

    ids = list(agent_ids)
    rows: list[SkillMatrixRow] = []
    for name in sorted(observed, key=lambda n: n.encode("utf-8")):
        seen = observed[name]
        per_agent = {
            aid: MatrixCell(present=True, hash=seen[aid]) if aid in seen else ABSENT for aid in ids
        }
        rows.append(SkillMatrixRow(skill_name=name, per_agent=per_agent, status=classify_status(per_agent.values())))
    return rows


class SkillMatrixBuilder:
    def __init__(self, registry: AgentRegistry, agents: Mapping[str, Agent]) -> None:
        self.registry = registry
        self.agents = agents

    def detected_ids(self) -> list[str]:
        return [aid for aid, a in self.agents.items() if a.detected]

    def build(self) -> list[SkillMatrixRow]:
        ids = self.detected_ids()
        observed: dict[str, dict[str, str]] = {}
        for aid in ids:
            for skill in self.registry.list_skills(aid):
                observed.setdefault(skill.name, {})[aid] = skill.tree_hash
        return build_rows(observed, ids)


def present_agents(row: SkillMatrixRow) -> list[str]:
    return [aid for aid, c in row.per_agent.items() if c.present]


def absent_agents(row: SkillMatrixRow) -> list[str]:
    return [aid for aid, c in row.per_agent.items() if not c.present]


def summarize(rows: Iterable[SkillMatrixRow]) -> dict[SkillStatus, int]:
    counts: dict[SkillStatus, int] = {"synced": 0, "conflict": 0, "unique": 0, "missing": 0}
    for r in rows:
        counts[r.status] += 1
    return counts

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from skillyard.agents import AgentRegistry
from skillyard.matrix import (
    SkillMatrixBuilder,
    absent_agents,
    build_rows,
    classify_status,
    present_agents,
    summarize,
)
from skillyard.models import ABSENT, Agent, MatrixCell


def test_classify_status_totality() -> None:
    assert classify_status([ABSENT, ABSENT]) == "missing"
    assert classify_status([MatrixCell(True, "h"), ABSENT]) == "unique"
    assert classify_status([MatrixCell(True, "h"), MatrixCell(True, "h")]) == "synced"
    assert classify_status([MatrixCell(True, "h"), MatrixCell(True, "g")]) == "conflict"
    assert classify_status([]) == "missing"


def test_build_rows_covers_every_agent_and_sorts_names() -> None:
    rows = build_rows({"b": {"claude": "h1"}, "a": {"claude": "h1", "cursor": "h1"}}, ["claude", "cursor", "codex"])
    assert [r.skill_name for r in rows] == ["a", "b"]
    assert set(rows[0].per_agent) == {"claude", "cursor", "codex"}
    assert rows[0].status == "synced"
    assert rows[1].status == "unique"
    assert present_agents(rows[1]) == ["claude"]
    assert absent_agents(rows[1]) == ["cursor", "codex"]
    assert summarize(rows) == {"synced": 1, "conflict": 0, "unique": 1, "missing": 0}


def test_builder_scans_only_detected_agents(tmp_path: Path, make_skill) -> None:
    agents = {
        aid: Agent(aid, aid, aid, str(tmp_path / aid / "skills"), "", detected=aid != "codex")
        for aid in ("claude", "cursor", "codex")
    }
    reg = AgentRegistry(agents)
    make_skill(tmp_path / "claude" / "skills", "same", body="x")
    make_skill(tmp_path / "cursor" / "skills", "same", body="x")
    make_skill(tmp_path / "claude" / "skills", "diff", body="one")
    make_skill(tmp_path / "cursor" / "skills", "diff", body="two")
    make_skill(tmp_path / "codex" / "skills", "hidden")

    rows = {r.skill_name: r for r in SkillMatrixBuilder(reg, agents).build()}
    assert set(rows) == {"same", "diff"}
    assert rows["same"].status == "synced"
    assert rows["diff"].status == "conflict"
    assert set(rows["diff"].per_agent) == {"claude", "cursor"}

    agents["codex"] = replace(agents["codex"], detected=True)
    rows = {r.skill_name: r for r in SkillMatrixBuilder(AgentRegistry(agents), agents).build()}
    assert rows["hidden"].status == "unique"

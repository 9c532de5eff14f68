from __future__ import annotations

from pathlib import Path

import pytest

from skillyard.agents import AgentRegistry
from skillyard.errors import TargetExistsError, UnknownAgentError, UnknownSkillError
from skillyard.models import Agent


def _agents(tmp_path: Path, *ids: str) -> dict[str, Agent]:
    return {
        aid: Agent(
            id=aid,
            display_name=aid.title(),
            short_display_name=aid.title(),
            global_dir=str(tmp_path / aid / "skills"),
            project_dir=f".{aid}/skills",
        )
        for aid in ids
    }


def test_detect_uses_parent_of_skills_dir(tmp_path: Path) -> None:
    (tmp_path / "claude").mkdir()  # installed, no skills dir yet
    reg = AgentRegistry(_agents(tmp_path, "claude", "cursor"))
    detected = reg.detect_agents()
    assert detected["claude"].detected is True
    assert detected["cursor"].detected is False
    # Detection returns new values; the input is not mutated.
    assert reg.agents["claude"].detected is False


def test_detect_with_tilde_paths(home: Path) -> None:
    (home / ".claude").mkdir()
    reg = AgentRegistry(
        {"claude": Agent("claude", "Claude Code", "Claude", "~/.claude/skills", ".claude/skills")}
    )
    assert reg.detect_agents()["claude"].detected
    assert reg.skills_root("claude") == home / ".claude" / "skills"


def test_list_skills_requires_marker_and_sorts(tmp_path: Path, make_skill) -> None:
    reg = AgentRegistry(_agents(tmp_path, "claude"))
    root = reg.skills_root("claude")
    make_skill(root, "zeta")
    make_skill(root, "alpha")
    (root / "no-marker").mkdir()
    (root / "stray.md").write_text("x", encoding="utf-8")

    skills = reg.list_skills("claude")
    assert [s.name for s in skills] == ["alpha", "zeta"]
    assert all(s.origin_agent == "claude" for s in skills)
    assert skills[0].identity.file_paths == ["SKILL.md"]


def test_linked_skills_are_not_listed_or_written_through(tmp_path: Path, make_skill) -> None:
    reg = AgentRegistry(_agents(tmp_path, "claude", "cursor"))
    stored = make_skill(tmp_path / "store", "fmt", body="stored")
    make_skill(reg.skills_root("claude"), "fmt", body="local")
    reg.skills_root("cursor").mkdir(parents=True)
    reg.skill_path("fmt", "cursor").symlink_to(stored, target_is_directory=True)

    assert reg.list_skills("cursor") == []
    with pytest.raises(TargetExistsError):
        reg.copy_skill("fmt", "claude", "cursor")
    assert "stored" in (stored / "SKILL.md").read_text(encoding="utf-8")


def test_list_skills_missing_root_is_empty(tmp_path: Path) -> None:
    reg = AgentRegistry(_agents(tmp_path, "claude"))
    assert reg.list_skills("claude") == []


def test_copy_and_delete(tmp_path: Path, make_skill) -> None:
    reg = AgentRegistry(_agents(tmp_path, "claude", "cursor"))
    make_skill(reg.skills_root("claude"), "fmt")

    dst = reg.copy_skill("fmt", "claude", "cursor")
    assert (dst / "SKILL.md").exists()
    assert reg.has_skill("fmt", "cursor")

    reg.delete_skill("fmt", "cursor")
    assert not reg.has_skill("fmt", "cursor")
    with pytest.raises(UnknownSkillError):
        reg.delete_skill("fmt", "cursor")
    with pytest.raises(UnknownSkillError):
        reg.copy_skill("nope", "claude", "cursor")


def test_unknown_agent(tmp_path: Path) -> None:
    reg = AgentRegistry(_agents(tmp_path, "claude"))
    with pytest.raises(UnknownAgentError):
        reg.list_skills("emacs")

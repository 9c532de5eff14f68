from __future__ import annotations

from pathlib import Path

import pytest

from skillyard.agents import AgentRegistry
from skillyard.errors import UnknownAgentError
from skillyard.hashing import hash_tree
from skillyard.manage import adopt
from skillyard.matrix import SkillMatrixBuilder
from skillyard.models import Agent, Registry
from skillyard.snapshot import SnapshotStore
from skillyard.store import SkillsStore
from skillyard.symlinks import is_symlink
from skillyard.sync import SkillSyncer, migrate, plan_sync, run_sync


def _setup(tmp_path: Path, *ids: str) -> tuple[dict[str, Agent], AgentRegistry]:
    agents = {aid: Agent(aid, aid, aid, str(tmp_path / aid / "skills"), "", detected=True) for aid in ids}
    return agents, AgentRegistry(agents)


def test_unique_becomes_synced(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b", "c")
    make_skill(reg.skills_root("a"), "x")
    snaps = SnapshotStore(tmp_path / "snaps", max_count=10)

    report = run_sync(registry=reg, agents=agents, snapshots=snaps)
    assert report.ok
    assert report.snapshot_id is not None
    assert snaps.get_snapshot(report.snapshot_id).skills == ("x",)

    (row,) = SkillMatrixBuilder(reg, agents).build()
    assert row.status == "synced"
    assert all(c.present for c in row.per_agent.values())


def test_conflict_resolved_with_source(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b")
    make_skill(reg.skills_root("a"), "x", body="winner")
    loser = make_skill(reg.skills_root("b"), "x", body="loser")
    (loser / "stale.md").write_text("old", encoding="utf-8")

    report = run_sync(registry=reg, agents=agents, source_agent="a", auto_snapshot=False)
    assert report.snapshot_id is None
    assert [r.skill for r in report.plan.resolutions] == ["x"]

    (row,) = SkillMatrixBuilder(reg, agents).build()
    assert row.status == "synced"
    assert not (reg.skill_path("x", "b") / "stale.md").exists()
    assert hash_tree(reg.skill_path("x", "b")).tree_hash == hash_tree(reg.skill_path("x", "a")).tree_hash


def test_conflict_without_source_is_left_alone(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b")
    make_skill(reg.skills_root("a"), "x", body="one")
    make_skill(reg.skills_root("b"), "x", body="two")

    report = run_sync(registry=reg, agents=agents)
    assert report.plan.is_empty
    assert [r.skill_name for r in report.plan.unresolved] == ["x"]
    (row,) = SkillMatrixBuilder(reg, agents).build()
    assert row.status == "conflict"


def test_dry_run_plans_identically_and_mutates_nothing(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b")
    make_skill(reg.skills_root("a"), "x")
    snaps = SnapshotStore(tmp_path / "snaps", max_count=10)

    dry = run_sync(registry=reg, agents=agents, snapshots=snaps, dry_run=True)
    assert dry.dry_run
    assert not reg.has_skill("x", "b")
    assert snaps.list_snapshots() == []

    real = run_sync(registry=reg, agents=agents, snapshots=snaps)
    assert real.plan == dry.plan
    assert reg.has_skill("x", "b")


def test_plan_sync_from_rows(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b", "c")
    make_skill(reg.skills_root("b"), "u")
    rows = SkillMatrixBuilder(reg, agents).build()
    plan = plan_sync(rows)
    (copy,) = plan.copies
    assert copy.source == "b"
    assert copy.targets == ("a", "c")


def test_partial_failure_is_reported(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b", "c")
    make_skill(reg.skills_root("a"), "x")
    # A regular file where agent c's skills dir should be makes the copy fail.
    (tmp_path / "c").mkdir(exist_ok=True)
    (tmp_path / "c" / "skills").write_text("not a dir", encoding="utf-8")

    out = SkillSyncer(reg, agents).sync_unique("x", "a", targets=["b", "c"])
    assert out.succeeded == ["b"]
    assert list(out.failed) == ["c"]
    assert not out.ok
    assert reg.has_skill("x", "b")


def test_unknown_source_agent(tmp_path: Path) -> None:
    agents, reg = _setup(tmp_path, "a")
    with pytest.raises(UnknownAgentError):
        run_sync(registry=reg, agents=agents, source_agent="zzz")


def test_migrate_copies_missing_only(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b")
    make_skill(reg.skills_root("a"), "one")
    make_skill(reg.skills_root("a"), "two", body="a's")
    make_skill(reg.skills_root("b"), "two", body="b's")
    snaps = SnapshotStore(tmp_path / "snaps", max_count=10)

    res = migrate(registry=reg, agents=agents, from_agent="a", to_agent="b", snapshots=snaps)
    assert res.to_copy == ("one",)
    assert res.skipped == ("two",)
    assert reg.has_skill("one", "b")
    assert "b's" in (reg.skill_path("two", "b") / "SKILL.md").read_text(encoding="utf-8")
    assert snaps.get_snapshot(res.snapshot_id).reason == "migrate-a-b"


def test_resolution_snapshot_keeps_the_overwritten_copy(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b")
    make_skill(reg.skills_root("a"), "x", body="v1\n")
    make_skill(reg.skills_root("b"), "x", body="v2\n")
    snaps = SnapshotStore(tmp_path / "snaps", max_count=10)

    report = run_sync(registry=reg, agents=agents, snapshots=snaps, source_agent="a")
    assert report.ok
    assert "v1" in (reg.skill_path("x", "b") / "SKILL.md").read_text(encoding="utf-8")

    snaps.restore(report.snapshot_id, reg.skills_root("b"))
    assert "v2" in (reg.skill_path("x", "b") / "SKILL.md").read_text(encoding="utf-8")


def test_adopted_skills_are_not_copied_out_of_the_store(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b")
    make_skill(reg.skills_root("a"), "x")
    store = SkillsStore(tmp_path / "store")
    adopt(registry=Registry(), agent_registry=reg, agents=agents, store=store, auto_snapshot=False)
    assert is_symlink(reg.skill_path("x", "a"))

    report = run_sync(registry=reg, agents=agents)
    assert report.plan.is_empty
    assert not reg.skill_path("x", "b").exists()
    assert reg.list_skills("a") == []


def test_copy_never_writes_through_a_store_link(tmp_path: Path, make_skill) -> None:
    agents, reg = _setup(tmp_path, "a", "b", "c")
    make_skill(reg.skills_root("a"), "x")
    store = SkillsStore(tmp_path / "store")
    adopt(registry=Registry(), agent_registry=reg, agents=agents, store=store, auto_snapshot=False)
    make_skill(reg.skills_root("c"), "x", body="rogue\n")

    report = run_sync(registry=reg, agents=agents)
    assert not report.ok
    (outcome,) = report.outcomes
    assert outcome.succeeded == ["b"]
    assert list(outcome.failed) == ["a"]
    assert "rogue" not in (store.skill_path("x") / "SKILL.md").read_text(encoding="utf-8")

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping

from .errors import SkillyardError
from .models import Agent, Registry
from .store import SkillsStore
from .symlinks import create_symlink, is_symlink, remove_managed_path, resolve_link_target


logger = logging.getLogger(__name__)


CheckState = Literal["healthy", "symlink-missing", "target-missing", "wrong-target", "rogue"]

BROKEN_STATES: frozenset[str] = frozenset({"symlink-missing", "target-missing", "wrong-target"})


@dataclass(frozen=True)
class AssignmentCheck:
    """Live state of one (skill, agent) assignment."""

    skill: str
    agent: str
    path: Path  # where the agent expects the symlink
    expected_target: Path
    state: CheckState
    actual_target: Path | None = None

    @property
    def is_broken(self) -> bool:
        return self.state in BROKEN_STATES

    @property
    def reason(self) -> str:
        if self.state == "wrong-target":
            return f"wrong target: {self.actual_target}"
        return self.state.replace("-", " ")

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill": self.skill,
            "agent": self.agent,
            "path": str(self.path),
            "expected": str(self.expected_target),
            "state": self.state,
            "actual": str(self.actual_target) if self.actual_target is not None else None,
        }


@dataclass(frozen=True)
class DoctorReport:
    checks: tuple[AssignmentCheck, ...] = ()
    skills: tuple[str, ...] = ()  # every registry skill examined, in order
    skipped: tuple[tuple[str, str], ...] = ()  # (skill, agent) with unknown/undetected agent

    @property
    def broken(self) -> list[AssignmentCheck]:
        return [c for c in self.checks if c.is_broken]

    @property
    def rogue(self) -> list[AssignmentCheck]:
        return [c for c in self.checks if c.state == "rogue"]

    @property
    def healthy(self) -> list[str]:
        """Skills whose every checked assignment is healthy."""

        bad = {c.skill for c in self.checks if c.state != "healthy"}
        return [s for s in self.skills if s not in bad]

    @property
    def ok(self) -> bool:
        return all(c.state == "healthy" for c in self.checks)


def _norm(p: Path) -> Path:
    return Path(os.path.normpath(p))


def check_assignment(path: Path, expected: Path) -> tuple[CheckState, Path | None]:
    if not is_symlink(path):
        if path.exists():
            return "rogue", None
        return "symlink-missing", None

    actual = resolve_link_target(path)
    if actual is None or not actual.exists():
        return "target-missing", actual
    if _norm(actual) != _norm(expected):
        return "wrong-target", actual
    return "healthy", actual


def run_doctor(*, registry: Registry, store: SkillsStore, agents: Mapping[str, Agent]) -> DoctorReport:
    checks: list[AssignmentCheck] = []
    skipped: list[tuple[str, str]] = []

    for name, skill in registry.skills.items():
        for aid, assignment in skill.assignments.items():
            agent = agents.get(aid)
            if agent is None or not agent.detected:
                skipped.append((name, aid))
                continue
            path = store.assignment_path(name, agent.skills_root, assignment)
            expected = store.assignment_target(name, assignment)
            state, actual = check_assignment(path, expected)
            checks.append(
                AssignmentCheck(
                    skill=name,
                    agent=aid,
                    path=path,
                    expected_target=expected,
                    state=state,
                    actual_target=actual,
                )
            )

    return DoctorReport(checks=tuple(checks), skills=tuple(registry.skills), skipped=tuple(skipped))


@dataclass(frozen=True)
class RepairResult:
    fixed: list[AssignmentCheck] = field(default_factory=list)
    skipped_rogue: list[AssignmentCheck] = field(default_factory=list)
    failed: list[tuple[AssignmentCheck, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def repair(report: DoctorReport, *, include_rogue: bool = False) -> RepairResult:
    """Recreate the expected symlink for every broken check.

    Rogue entries hold real user content and are only replaced when
    `include_rogue` is set (the caller has confirmed).
    """

    res = RepairResult()
    for c in report.checks:
        if c.state == "healthy":
            continue
        if c.state == "rogue" and not include_rogue:
            res.skipped_rogue.append(c)
            continue
        try:
            remove_managed_path(c.path)
            create_symlink(c.expected_target, c.path)
        except (OSError, SkillyardError) as e:
            logger.warning("repair of %s (%s) failed: %s", c.skill, c.agent, e)
            res.failed.append((c, str(e)))
            continue
        logger.info("repaired %s (%s): %s", c.skill, c.agent, c.state)
        res.fixed.append(c)
    return res

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .errors import TargetExistsError, UnknownSkillError
from .models import SkillAssignment
from .symlinks import create_symlink, remove_managed_path, remove_symlink


logger = logging.getLogger(__name__)


DIRECTORY = SkillAssignment(kind="directory")


class SkillsStore:
    """Central store: `skills_dir/<name>` holds the one authoritative copy of a skill.

    Agents see store entries through symlinks ("assignments"):

    - directory: `<agent_dir>/<name>`       -> `<store>/<name>`
    - file:      `<agent_dir>/<name><ext>`  -> `<store>/<name>/<target>`
    """

    def __init__(self, skills_dir: Path) -> None:
        self.skills_dir = skills_dir

    def ensure_dir(self) -> None:
        self.skills_dir.mkdir(parents=True, exist_ok=True)

    def skill_path(self, name: str) -> Path:
        return self.skills_dir / name

    def list_skills(self) -> list[str]:
        try:
            return sorted(p.name for p in self.skills_dir.iterdir() if p.is_dir())
        except FileNotFoundError:
            return []

    def has_skill(self, name: str) -> bool:
        return self.skill_path(name).exists()

    def add_skill(self, name: str, source: Path) -> Path:
        """Copy `source` into the store as `name`."""

        self.ensure_dir()
        dst = self.skill_path(name)
        if dst.exists() or dst.is_symlink():
            raise TargetExistsError(path=dst)
        tmp = dst.with_name(dst.name + ".tmp")
        remove_managed_path(tmp)
        shutil.copytree(source, tmp, symlinks=True)
        tmp.replace(dst)
        logger.debug("stored %s from %s", name, source)
        return dst

    def replace_skill(self, name: str, source: Path) -> Path:
        """Swap the stored copy of `name` for a fresh copy of `source`."""

        dst = self.skill_path(name)
        tmp = dst.with_name(dst.name + ".tmp")
        remove_managed_path(tmp)
        shutil.copytree(source, tmp, symlinks=True)
        remove_managed_path(dst)
        tmp.replace(dst)
        return dst

    def link_skill(self, name: str, source: Path) -> Path:
        """Store entry that is itself a symlink to a local checkout."""

        self.ensure_dir()
        dst = self.skill_path(name)
        create_symlink(source.resolve(), dst)
        return dst

    def remove_skill(self, name: str) -> None:
        p = self.skill_path(name)
        if not p.exists() and not p.is_symlink():
            raise UnknownSkillError(skill_name=name, where="store")
        remove_managed_path(p)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assignment_path(self, name: str, agent_skills_dir: Path, assignment: SkillAssignment = DIRECTORY) -> Path:
        """Where the agent-visible symlink for this assignment lives."""

        if assignment.kind == "directory":
            return agent_skills_dir / name
        if assignment.kind == "file":
            if not assignment.target:
                raise ValueError(f"file assignment for {name} has no target")
            return agent_skills_dir / f"{name}{Path(assignment.target).suffix}"
        raise ValueError(f"unsupported assignment kind: {assignment.kind}")

    def assignment_target(self, name: str, assignment: SkillAssignment = DIRECTORY) -> Path:
        """What the agent-visible symlink must point at."""

        if assignment.kind == "directory":
            return self.skill_path(name)
        if assignment.kind == "file":
            if not assignment.target:
                raise ValueError(f"file assignment for {name} has no target")
            return self.skill_path(name) / assignment.target
        raise ValueError(f"unsupported assignment kind: {assignment.kind}")

    def assign_skill(self, name: str, agent_skills_dir: Path, assignment: SkillAssignment = DIRECTORY) -> Path:
        if not self.has_skill(name):
            raise UnknownSkillError(skill_name=name, where="store")
        target = self.assignment_target(name, assignment)
        if not target.exists():
            raise UnknownSkillError(skill_name=f"{name}/{assignment.target}", where="store")
        link = self.assignment_path(name, agent_skills_dir, assignment)
        create_symlink(target, link)
        return link

    def unassign_skill(self, name: str, agent_skills_dir: Path, assignment: SkillAssignment = DIRECTORY) -> None:
        """Remove the agent symlink only; the store copy is untouched."""

        remove_symlink(self.assignment_path(name, agent_skills_dir, assignment))

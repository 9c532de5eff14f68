from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from .paths import expand_path


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SkillFile:
    path: str  # relative POSIX path
    content_hash: str


@dataclass(frozen=True)
class TreeIdentity:
    tree_hash: str
    files: tuple[SkillFile, ...] = ()

    @property
    def file_paths(self) -> list[str]:
        return [f.path for f in self.files]


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Agent:
    id: str
    display_name: str
    short_display_name: str  # max 8 chars, used for matrix columns
    global_dir: str  # may start with "~/"
    project_dir: str  # relative to a project root
    detected: bool = False

    @property
    def skills_root(self) -> Path:
        return expand_path(self.global_dir)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.display_name,
            "shortName": self.short_display_name,
            "globalPath": self.global_dir,
            "projectPath": self.project_dir,
        }


@dataclass(frozen=True)
class SkillInfo:
    name: str
    identity: TreeIdentity
    origin_agent: str
    path: Path

    @property
    def tree_hash(self) -> str:
        return self.identity.tree_hash


# ---------------------------------------------------------------------------
# Reconciliation matrix
# ---------------------------------------------------------------------------


SkillStatus = Literal["missing", "unique", "synced", "conflict"]


@dataclass(frozen=True)
class MatrixCell:
    present: bool
    hash: str | None = None


ABSENT = MatrixCell(present=False, hash=None)


@dataclass(frozen=True)
class SkillMatrixRow:
    skill_name: str
    per_agent: dict[str, MatrixCell]
    status: SkillStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill": self.skill_name,
            "status": self.status,
            "agents": {
                aid: {"present": cell.present, "hash": cell.hash} for aid, cell in self.per_agent.items()
            },
        }


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


SyncStrategy = Literal["union", "source"]


@dataclass(frozen=True)
class SyncConfig:
    strategy: SyncStrategy = "union"
    source_agent: str = ""


@dataclass(frozen=True)
class SnapshotConfig:
    max_count: int = 10
    auto_snapshot: bool = True


@dataclass(frozen=True)
class Config:
    agents: dict[str, Agent] = field(default_factory=dict)
    sync: SyncConfig = field(default_factory=SyncConfig)
    snapshots: SnapshotConfig = field(default_factory=SnapshotConfig)

    def detected_agents(self) -> dict[str, Agent]:
        return {aid: a for aid, a in self.agents.items() if a.detected}


# ---------------------------------------------------------------------------
# Central store registry
# ---------------------------------------------------------------------------


AssignmentKind = Literal["directory", "file"]
InstallProtocol = Literal["https", "ssh", "local"]


@dataclass(frozen=True)
class SkillAssignment:
    kind: AssignmentKind = "directory"
    target: str | None = None  # file within the store entry, for kind="file"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.kind}
        if self.target is not None:
            out["target"] = self.target
        return out


@dataclass(frozen=True)
class InstallSource:
    repo: str  # "user/repo", full git URL, or absolute local path
    protocol: InstallProtocol
    skill_path: str  # path of the skill directory within the repo

    def to_dict(self) -> dict[str, Any]:
        return {"repo": self.repo, "protocol": self.protocol, "skillPath": self.skill_path}


@dataclass
class ManagedSkill:
    name: str
    source: str  # "adopted:claude", "installed:user/repo", ...
    installed_at: str  # ISO-8601
    assignments: dict[str, SkillAssignment] = field(default_factory=dict)
    install_source: InstallSource | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "source": self.source,
            "installedAt": self.installed_at,
            "assignments": {aid: a.to_dict() for aid, a in self.assignments.items()},
        }
        if self.install_source is not None:
            out["installSource"] = self.install_source.to_dict()
        return out


@dataclass
class Registry:
    version: int = 1
    skills: dict[str, ManagedSkill] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "skills": {name: s.to_dict() for name, s in self.skills.items()},
        }

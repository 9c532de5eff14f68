from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class SkillyardError(Exception):
    """Base exception for all skillyard failures."""


# ---------------------------------------------------------------------------
# Config / registry files
# ---------------------------------------------------------------------------


class ConfigError(SkillyardError):
    """Base exception for config parsing/validation errors."""


@dataclass(frozen=True)
class ConfigParseError(ConfigError):
    """Raised when a TOML file cannot be parsed."""

    path: Path
    message: str
    lineno: int | None = None
    colno: int | None = None

    def __str__(self) -> str:
        loc = ""
        if self.lineno is not None and self.colno is not None:
            loc = f" (line {self.lineno}, column {self.colno})"
        return f"Invalid TOML in {self.path}: {self.message}{loc}"


@dataclass(frozen=True)
class ConfigValidationError(ConfigError):
    """Raised when a parsed config file does not match the expected schema."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"Invalid config in {self.path}: {self.message}"


@dataclass(frozen=True)
class RegistryError(SkillyardError):
    """Raised when registry.json cannot be parsed or has the wrong shape."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"Invalid registry in {self.path}: {self.message}"


# ---------------------------------------------------------------------------
# Not-found conditions
# ---------------------------------------------------------------------------


class NotFoundError(SkillyardError):
    """Base class for unknown agent / skill / snapshot identifiers."""


@dataclass(frozen=True)
class UnknownAgentError(NotFoundError):
    agent_id: str

    def __str__(self) -> str:
        return f"Unknown agent: {self.agent_id}"


@dataclass(frozen=True)
class UnknownSkillError(NotFoundError):
    skill_name: str
    where: str | None = None

    def __str__(self) -> str:
        if self.where:
            return f"Skill not found in {self.where}: {self.skill_name}"
        return f"Skill not found: {self.skill_name}"


@dataclass(frozen=True)
class SnapshotNotFoundError(NotFoundError):
    snapshot_id: str

    def __str__(self) -> str:
        return f"Snapshot not found: {self.snapshot_id}"


# ---------------------------------------------------------------------------
# Policy violations
# ---------------------------------------------------------------------------


class PolicyViolationError(SkillyardError):
    """A mutation would destroy data skillyard does not own."""


@dataclass(frozen=True)
class ManagedPathConflictError(PolicyViolationError):
    """A real file or directory occupies a path that should be a managed symlink."""

    path: Path

    def __str__(self) -> str:
        return f"Refusing to replace non-symlink path: {self.path}"


@dataclass(frozen=True)
class TargetExistsError(PolicyViolationError):
    path: Path

    def __str__(self) -> str:
        return f"Target already exists: {self.path}"


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TreeDepthError(SkillyardError):
    root: Path
    depth: int

    def __str__(self) -> str:
        return f"Directory tree under {self.root} exceeds max depth {self.depth}"


class FetchError(SkillyardError):
    """Raised when a skill source cannot be fetched (bad path, failed clone)."""


class ArchiveError(SkillyardError):
    """Raised when a backup archive is malformed."""

"""registry.json I/O.

The registry records every skill adopted or installed into the central store
together with its per-agent assignments. Load once per run, mutate in memory,
save once at the end of a logically atomic step.

Formatting is canonical (sorted keys, 2-space indent, trailing newline) and
writes go through a temp file + replace.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from . import paths
from .errors import RegistryError
from .models import InstallSource, ManagedSkill, Registry, SkillAssignment


REGISTRY_VERSION = 1

_ASSIGNMENT_KINDS = {"directory", "file"}
_PROTOCOLS = {"https", "ssh", "local"}


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def _expect_mapping(path: Path, value: Any, *, ctx: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise RegistryError(path=path, message=f"{ctx} must be an object")
    return value


def _expect_str(path: Path, value: Any, *, ctx: str) -> str:
    if not isinstance(value, str):
        raise RegistryError(path=path, message=f"{ctx} must be a string")
    return value


def _parse_assignment(path: Path, raw: Any, *, ctx: str) -> SkillAssignment:
    m = _expect_mapping(path, raw, ctx=ctx)
    kind = m.get("type", "directory")
    if kind not in _ASSIGNMENT_KINDS:
        raise RegistryError(path=path, message=f"{ctx}.type must be one of {sorted(_ASSIGNMENT_KINDS)}")
    target = m.get("target")
    if target is not None:
        target = _expect_str(path, target, ctx=f"{ctx}.target")
    if kind == "file" and not target:
        raise RegistryError(path=path, message=f"{ctx}.target is required for file assignments")
    return SkillAssignment(kind=kind, target=target)


def _parse_install_source(path: Path, raw: Any, *, ctx: str) -> InstallSource:
    m = _expect_mapping(path, raw, ctx=ctx)
    protocol = m.get("protocol")
    if protocol not in _PROTOCOLS:
        raise RegistryError(path=path, message=f"{ctx}.protocol must be one of {sorted(_PROTOCOLS)}")
    return InstallSource(
        repo=_expect_str(path, m.get("repo"), ctx=f"{ctx}.repo"),
        protocol=protocol,
        skill_path=_expect_str(path, m.get("skillPath", "."), ctx=f"{ctx}.skillPath"),
    )


def _parse_skill(path: Path, name: str, raw: Any) -> ManagedSkill:
    ctx = f"skills.{name}"
    m = _expect_mapping(path, raw, ctx=ctx)
    assignments_raw = _expect_mapping(path, m.get("assignments", {}), ctx=f"{ctx}.assignments")
    install_source = None
    if m.get("installSource") is not None:
        install_source = _parse_install_source(path, m["installSource"], ctx=f"{ctx}.installSource")
    return ManagedSkill(
        name=_expect_str(path, m.get("name", name), ctx=f"{ctx}.name"),
        source=_expect_str(path, m.get("source", ""), ctx=f"{ctx}.source"),
        installed_at=_expect_str(path, m.get("installedAt", ""), ctx=f"{ctx}.installedAt"),
        assignments={
            aid: _parse_assignment(path, a, ctx=f"{ctx}.assignments.{aid}") for aid, a in assignments_raw.items()
        },
        install_source=install_source,
    )


def parse_registry(data: Any, *, path: Path) -> Registry:
    m = _expect_mapping(path, data, ctx="registry")
    version = m.get("version", REGISTRY_VERSION)
    if version != REGISTRY_VERSION:
        raise RegistryError(path=path, message=f"unsupported registry version: {version!r}")
    skills_raw = _expect_mapping(path, m.get("skills", {}), ctx="skills")
    return Registry(
        version=REGISTRY_VERSION,
        skills={name: _parse_skill(path, name, raw) for name, raw in skills_raw.items()},
    )


class RegistryStore:
    def __init__(self, registry_path: Path | None = None) -> None:
        self.path = registry_path or paths.registry_path()

    def load(self) -> Registry:
        """Missing file -> empty registry."""

        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Registry()
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise RegistryError(path=self.path, message=f"invalid JSON: {e}") from e
        return parse_registry(data, path=self.path)

    def save(self, registry: Registry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(_canonical_json(registry.to_dict()), encoding="utf-8")
        tmp.replace(self.path)

"""Backup archives: every skill across detected agents packed into one .tar.gz.

Archive layout:

    manifest.json
    skills/<name>/...
    config.toml          (only when includes_config)
"""

from __future__ import annotations

import io
import json
import logging
import shutil
import tarfile
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from .errors import ArchiveError
from .models import SkillInfo


logger = logging.getLogger(__name__)

ARCHIVE_VERSION = "1"
TOOL_VERSION = "0.1.0"
MANIFEST_NAME = "manifest.json"
CONFIG_NAME = "config.toml"


@dataclass(frozen=True)
class BackupEntry:
    hash: str
    origin: str
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class BackupManifest:
    created_at: str
    skills: dict[str, BackupEntry] = field(default_factory=dict)
    source_agents: tuple[str, ...] = ()
    includes_config: bool = False
    version: str = ARCHIVE_VERSION
    tool_version: str = TOOL_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "created_at": self.created_at,
            "tool_version": self.tool_version,
            "source_agents": list(self.source_agents),
            "skills": {
                name: {"hash": e.hash, "origin": e.origin, "files": list(e.files)} for name, e in self.skills.items()
            },
            "includes_config": self.includes_config,
        }

    @classmethod
    def from_dict(cls, data: Any) -> BackupManifest:
        if not isinstance(data, dict):
            raise ArchiveError("manifest.json: expected an object")
        if data.get("version") != ARCHIVE_VERSION:
            raise ArchiveError(f"manifest.json: unsupported version {data.get('version')!r}")
        raw_skills = data.get("skills", {})
        if not isinstance(raw_skills, dict):
            raise ArchiveError("manifest.json: skills must be an object")
        skills: dict[str, BackupEntry] = {}
        for name, e in raw_skills.items():
            if not isinstance(e, dict) or not isinstance(e.get("hash"), str) or not isinstance(e.get("origin"), str):
                raise ArchiveError(f"manifest.json: bad entry for skill {name!r}")
            skills[name] = BackupEntry(hash=e["hash"], origin=e["origin"], files=tuple(e.get("files", [])))
        return cls(
            created_at=str(data.get("created_at", "")),
            skills=skills,
            source_agents=tuple(data.get("source_agents", [])),
            includes_config=bool(data.get("includes_config", False)),
            tool_version=str(data.get("tool_version", "")),
        )


def collect_unique(skills_by_agent: Mapping[str, Sequence[SkillInfo]]) -> list[SkillInfo]:
    """First copy of each skill name, walking agents in the given order."""

    seen: dict[str, SkillInfo] = {}
    for infos in skills_by_agent.values():
        for s in infos:
            seen.setdefault(s.name, s)
    return [seen[n] for n in sorted(seen)]


def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mtime = int(datetime.now(timezone.utc).timestamp())
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(data))


def create_backup(
    skills: Iterable[SkillInfo],
    output: Path,
    *,
    config_file: Path | None = None,
) -> BackupManifest:
    """Write `output` as a gzip tarball; returns the manifest that was stored."""

    skills = list(skills)
    include_config = config_file is not None and config_file.is_file()
    origins: list[str] = []
    for s in skills:
        if s.origin_agent not in origins:
            origins.append(s.origin_agent)

    manifest = BackupManifest(
        created_at=datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        skills={
            s.name: BackupEntry(hash=s.tree_hash, origin=s.origin_agent, files=tuple(s.identity.file_paths))
            for s in skills
        },
        source_agents=tuple(origins),
        includes_config=include_config,
    )

    output.parent.mkdir(parents=True, exist_ok=True)
    tmp = output.with_name(output.name + ".tmp")
    with tarfile.open(tmp, mode="w:gz") as tar:
        _add_bytes(tar, MANIFEST_NAME, (json.dumps(manifest.to_dict(), indent=2) + "\n").encode("utf-8"))
        for s in skills:
            for rel in s.identity.file_paths:
                _add_bytes(tar, f"skills/{s.name}/{rel}", (s.path / rel).read_bytes())
        if include_config:
            assert config_file is not None
            _add_bytes(tar, CONFIG_NAME, config_file.read_bytes())
    tmp.replace(output)
    logger.info("wrote backup %s (%d skills)", output, len(skills))
    return manifest


def read_backup(archive: Path) -> BackupManifest:
    try:
        with tarfile.open(archive, mode="r:gz") as tar:
            try:
                f = tar.extractfile(MANIFEST_NAME)
            except KeyError:
                raise ArchiveError(f"{archive}: no {MANIFEST_NAME}") from None
            if f is None:
                raise ArchiveError(f"{archive}: {MANIFEST_NAME} is not a file")
            raw = f.read()
    except (tarfile.TarError, EOFError) as e:
        raise ArchiveError(f"{archive}: not a readable .tar.gz: {e}") from e
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ArchiveError(f"{archive}: invalid {MANIFEST_NAME}: {e}") from e
    return BackupManifest.from_dict(data)


def extract_backup(archive: Path, dest: Path) -> BackupManifest:
    manifest = read_backup(archive)
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive, mode="r:gz") as tar:
            tar.extractall(path=dest, filter="data")
    except tarfile.TarError as e:
        raise ArchiveError(f"{archive}: extraction failed: {e}") from e
    return manifest


def restore_backup(archive: Path, target_dirs: Iterable[Path]) -> BackupManifest:
    """Copy every archived skill into each target skills directory.

    Files present in the archive overwrite their counterparts; other files in
    an existing skill directory are left alone.
    """

    with tempfile.TemporaryDirectory(prefix="skillyard-restore-") as tmp:
        manifest = extract_backup(archive, Path(tmp))
        root = Path(tmp) / "skills"
        for target in target_dirs:
            target.mkdir(parents=True, exist_ok=True)
            for name in manifest.skills:
                src = root / name
                if not src.is_dir():
                    raise ArchiveError(f"{archive}: skill {name!r} listed in manifest but missing")
                shutil.copytree(src, target / name, dirs_exist_ok=True)
            logger.info("restored %d skills into %s", len(manifest.skills), target)
    return manifest

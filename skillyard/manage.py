"""Central-store management: adopt, install, update, assign, unassign, uninstall.

Every function mutates the in-memory `Registry` it is given; persisting it is
the caller's job (load once, save once per command).
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Mapping, Sequence

from .agents import AgentRegistry
from .errors import SkillyardError, TargetExistsError, UnknownAgentError, UnknownSkillError
from .fetch import checkout_source, parse_source
from .frontmatter import has_marker, read_metadata
from .hashing import hash_tree
from .models import Agent, InstallSource, ManagedSkill, Registry, SkillAssignment
from .snapshot import SnapshotStore
from .store import SkillsStore
from .symlinks import create_symlink, is_symlink, remove_managed_path
from .tiebreak import Candidate, suggest_winner


logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class AgentResult:
    """Per-agent outcome of an assign/unassign style operation."""

    skill: str
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


# ---------------------------------------------------------------------------
# Adopt
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FoundCopy:
    name: str
    agent_id: str
    path: Path


Chooser = Callable[[str, Sequence[FoundCopy]], str]


def default_chooser(name: str, copies: Sequence[FoundCopy]) -> str:
    return suggest_winner([Candidate(agent_id=c.agent_id, path=c.path) for c in copies])


def scan_real_skills(agent_registry: AgentRegistry, agents: Mapping[str, Agent]) -> list[FoundCopy]:
    """Real (non-symlink) skill directories across detected agents."""

    found: list[FoundCopy] = []
    for aid, agent in agents.items():
        if not agent.detected:
            continue
        root = agent_registry.skills_root(aid)
        try:
            entries = sorted(root.iterdir(), key=lambda p: p.name)
        except FileNotFoundError:
            continue
        for d in entries:
            if is_symlink(d) or not d.is_dir() or not has_marker(d):
                continue
            found.append(FoundCopy(name=d.name, agent_id=aid, path=d))
    return found


@dataclass(frozen=True)
class AdoptDecision:
    name: str
    winner: FoundCopy
    others: tuple[FoundCopy, ...] = ()


@dataclass(frozen=True)
class AdoptResult:
    adopted: tuple[AdoptDecision, ...] = ()
    taken_over: tuple[FoundCopy, ...] = ()
    dry_run: bool = False
    snapshot_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.adopted and not self.taken_over


def plan_adopt(found: Sequence[FoundCopy], store: SkillsStore, choose: Chooser) -> AdoptResult:
    by_name: dict[str, list[FoundCopy]] = {}
    for c in found:
        by_name.setdefault(c.name, []).append(c)

    adopted: list[AdoptDecision] = []
    taken_over: list[FoundCopy] = []
    for name in sorted(by_name):
        copies = by_name[name]
        if store.has_skill(name):
            taken_over.extend(copies)
            continue
        if len(copies) == 1:
            adopted.append(AdoptDecision(name=name, winner=copies[0]))
            continue
        chosen = choose(name, copies)
        winner = next((c for c in copies if c.agent_id == chosen), None)
        if winner is None:
            raise UnknownAgentError(agent_id=chosen)
        adopted.append(
            AdoptDecision(name=name, winner=winner, others=tuple(c for c in copies if c is not winner))
        )
    return AdoptResult(adopted=tuple(adopted), taken_over=tuple(taken_over))


def _replace_with_link(copy: FoundCopy, store: SkillsStore) -> None:
    remove_managed_path(copy.path)
    create_symlink(store.skill_path(copy.name), copy.path)


def adopt(
    *,
    registry: Registry,
    agent_registry: AgentRegistry,
    agents: Mapping[str, Agent],
    store: SkillsStore,
    choose: Chooser | None = None,
    snapshots: SnapshotStore | None = None,
    auto_snapshot: bool = True,
    dry_run: bool = False,
) -> AdoptResult:
    """Move real skill directories into the store and leave symlinks behind.

    Copies of a name already in the store are rogue and get replaced by links.
    When several agents hold a name, `choose` picks the copy to keep.
    """

    found = scan_real_skills(agent_registry, agents)
    plan = plan_adopt(found, store, choose or default_chooser)
    if dry_run or plan.is_empty:
        return AdoptResult(adopted=plan.adopted, taken_over=plan.taken_over, dry_run=dry_run)

    snapshot_id: str | None = None
    if auto_snapshot and snapshots is not None:
        snapshot_id = snapshots.create_snapshot([c.path for c in found], "pre-adopt")

    for d in plan.adopted:
        store.add_skill(d.name, d.winner.path)
        assignments: dict[str, SkillAssignment] = {}
        for c in (d.winner, *d.others):
            _replace_with_link(c, store)
            assignments[c.agent_id] = SkillAssignment(kind="directory")
        registry.skills[d.name] = ManagedSkill(
            name=d.name,
            source=f"adopted:{d.winner.agent_id}",
            installed_at=_now_iso(),
            assignments=assignments,
        )
        logger.info("adopted %s from %s", d.name, d.winner.agent_id)

    for c in plan.taken_over:
        _replace_with_link(c, store)
        managed = registry.skills.get(c.name)
        if managed is None:
            managed = ManagedSkill(name=c.name, source=f"adopted:{c.agent_id}", installed_at=_now_iso())
            registry.skills[c.name] = managed
        managed.assignments.setdefault(c.agent_id, SkillAssignment(kind="directory"))
        logger.info("replaced rogue copy of %s in %s", c.name, c.agent_id)

    return AdoptResult(adopted=plan.adopted, taken_over=plan.taken_over, snapshot_id=snapshot_id)


# ---------------------------------------------------------------------------
# Install / update
# ---------------------------------------------------------------------------


SKILL_DIRS = ("skills", ".claude/skills", ".cursor/skills", ".codex/skills")


@dataclass(frozen=True)
class DiscoveredSkill:
    name: str
    path: Path
    relative_path: str  # within the source checkout, POSIX
    description: str | None = None


def discover_skills(base: Path) -> list[DiscoveredSkill]:
    """Skills in a checkout: the root itself, its children, and the usual skill dirs."""

    candidates: list[Path] = []
    if has_marker(base):
        candidates.append(base)
    for parent in (base, *(base / d for d in SKILL_DIRS)):
        if not parent.is_dir():
            continue
        candidates.extend(sorted(p for p in parent.iterdir() if p.is_dir() and has_marker(p)))

    out: list[DiscoveredSkill] = []
    seen: set[str] = set()
    for p in candidates:
        if p.name in seen:
            continue
        seen.add(p.name)
        rel = p.relative_to(base).as_posix()
        out.append(
            DiscoveredSkill(
                name=p.name,
                path=p,
                relative_path=rel,
                description=read_metadata(p).description,
            )
        )
    return out


Selector = Callable[[Sequence[DiscoveredSkill]], Iterable[str]]


@dataclass(frozen=True)
class InstallResult:
    source: str
    discovered: tuple[DiscoveredSkill, ...] = ()
    installed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()  # already in the store


def install(
    *,
    source: str,
    registry: Registry,
    store: SkillsStore,
    select: Selector | None = None,
    ssh: bool = False,
    submodules: bool = True,
) -> InstallResult:
    """Install skills from a local directory or a git repository into the store.

    Local skills are linked (the store entry points at the checkout), remote
    ones are copied out of a temporary shallow clone.
    """

    src = parse_source(source, ssh=ssh)
    with checkout_source(src, submodules=submodules) as root:
        discovered = discover_skills(root)
        chosen = set(select(discovered)) if select is not None else {d.name for d in discovered}

        installed: list[str] = []
        skipped: list[str] = []
        for d in discovered:
            if d.name not in chosen:
                continue
            if store.has_skill(d.name) or d.name in registry.skills:
                skipped.append(d.name)
                continue
            if src.is_local:
                store.link_skill(d.name, d.path)
            else:
                store.add_skill(d.name, d.path)
            registry.skills[d.name] = ManagedSkill(
                name=d.name,
                source=f"installed:{src.repo}",
                installed_at=_now_iso(),
                install_source=InstallSource(repo=src.repo, protocol=src.protocol, skill_path=d.relative_path),
            )
            installed.append(d.name)
            logger.info("installed %s from %s", d.name, src.repo)

    return InstallResult(
        source=src.repo, discovered=tuple(discovered), installed=tuple(installed), skipped=tuple(skipped)
    )


@dataclass(frozen=True)
class UpdateCheck:
    name: str
    status: str  # up-to-date | update-available | missing-upstream
    local_hash: str | None = None
    remote_hash: str | None = None


@dataclass(frozen=True)
class UpdateResult:
    checks: tuple[UpdateCheck, ...] = ()
    updated: tuple[str, ...] = ()
    skipped_local: tuple[str, ...] = ()
    dry_run: bool = False


def update(
    *,
    registry: Registry,
    store: SkillsStore,
    names: Iterable[str] | None = None,
    dry_run: bool = False,
    submodules: bool = True,
) -> UpdateResult:
    """Re-fetch remote sources and replace store copies whose tree hash changed.

    Each repository is cloned once. Local installs are links and never stale.
    """

    wanted = set(names) if names is not None else None
    groups: dict[tuple[str, str], list[ManagedSkill]] = {}
    skipped_local: list[str] = []
    for s in registry.skills.values():
        if s.install_source is None:
            continue
        if wanted is not None and s.name not in wanted:
            continue
        if s.install_source.protocol == "local":
            skipped_local.append(s.name)
            continue
        key = (s.install_source.protocol, s.install_source.repo)
        groups.setdefault(key, []).append(s)

    checks: list[UpdateCheck] = []
    updated: list[str] = []
    for (protocol, repo), skills in sorted(groups.items()):
        src = parse_source(repo, ssh=protocol == "ssh")
        with checkout_source(src, submodules=submodules) as root:
            by_path = {d.relative_path: d for d in discover_skills(root)}
            for s in skills:
                assert s.install_source is not None
                remote = by_path.get(s.install_source.skill_path)
                if remote is None:
                    logger.warning("%s: %s not found in %s", s.name, s.install_source.skill_path, repo)
                    checks.append(UpdateCheck(name=s.name, status="missing-upstream"))
                    continue
                local_hash = hash_tree(store.skill_path(s.name)).tree_hash if store.has_skill(s.name) else None
                remote_hash = hash_tree(remote.path).tree_hash
                if local_hash == remote_hash:
                    checks.append(UpdateCheck(s.name, "up-to-date", local_hash, remote_hash))
                    continue
                checks.append(UpdateCheck(s.name, "update-available", local_hash, remote_hash))
                if dry_run:
                    continue
                store.replace_skill(s.name, remote.path)
                s.installed_at = _now_iso()
                updated.append(s.name)
                logger.info("updated %s", s.name)

    return UpdateResult(
        checks=tuple(checks), updated=tuple(updated), skipped_local=tuple(skipped_local), dry_run=dry_run
    )


# ---------------------------------------------------------------------------
# Assign / unassign / uninstall
# ---------------------------------------------------------------------------


def _managed(registry: Registry, name: str) -> ManagedSkill:
    try:
        return registry.skills[name]
    except KeyError:
        raise UnknownSkillError(skill_name=name, where="registry") from None


def _agent_dir(agents: Mapping[str, Agent], agent_id: str) -> Path:
    agent = agents.get(agent_id)
    if agent is None:
        raise UnknownAgentError(agent_id=agent_id)
    if not agent.detected:
        raise UnknownAgentError(agent_id=f"{agent_id} (not detected)")
    return agent.skills_root


def assign(
    *,
    registry: Registry,
    store: SkillsStore,
    agents: Mapping[str, Agent],
    skill: str,
    agent_ids: Iterable[str],
    assignment: SkillAssignment | None = None,
) -> AgentResult:
    managed = _managed(registry, skill)
    assignment = assignment or SkillAssignment(kind="directory")
    out = AgentResult(skill=skill)
    for aid in agent_ids:
        try:
            store.assign_skill(skill, _agent_dir(agents, aid), assignment)
        except (OSError, SkillyardError) as e:
            out.failed[aid] = str(e)
            continue
        managed.assignments[aid] = assignment
        out.succeeded.append(aid)
    return out


def unassign(
    *,
    registry: Registry,
    store: SkillsStore,
    agents: Mapping[str, Agent],
    skill: str,
    agent_ids: Iterable[str],
) -> AgentResult:
    managed = _managed(registry, skill)
    out = AgentResult(skill=skill)
    for aid in agent_ids:
        assignment = managed.assignments.get(aid, SkillAssignment(kind="directory"))
        try:
            store.unassign_skill(skill, _agent_dir(agents, aid), assignment)
        except (OSError, SkillyardError) as e:
            out.failed[aid] = str(e)
            continue
        managed.assignments.pop(aid, None)
        out.succeeded.append(aid)
    return out


@dataclass(frozen=True)
class UninstallResult:
    removed: tuple[str, ...] = ()
    not_found: tuple[str, ...] = ()
    unlinked: tuple[AgentResult, ...] = ()


def uninstall(
    *,
    registry: Registry,
    store: SkillsStore,
    agents: Mapping[str, Agent],
    names: Iterable[str],
    delete_files: bool = False,
) -> UninstallResult:
    """Drop skills from the registry after removing their agent symlinks.

    A skill whose links could not all be removed (e.g. a rogue real directory
    sits where a link should be) stays registered.
    """

    removed: list[str] = []
    not_found: list[str] = []
    unlinked: list[AgentResult] = []
    for name in names:
        managed = registry.skills.get(name)
        if managed is None:
            not_found.append(name)
            continue
        res = AgentResult(skill=name)
        for aid, assignment in list(managed.assignments.items()):
            agent = agents.get(aid)
            if agent is None:
                continue
            try:
                store.unassign_skill(name, agent.skills_root, assignment)
            except (OSError, SkillyardError) as e:
                res.failed[aid] = str(e)
                continue
            res.succeeded.append(aid)
        unlinked.append(res)
        if not res.ok:
            continue

        if delete_files and (store.has_skill(name) or store.skill_path(name).is_symlink()):
            store.remove_skill(name)
        del registry.skills[name]
        removed.append(name)
        logger.info("uninstalled %s", name)

    return UninstallResult(removed=tuple(removed), not_found=tuple(not_found), unlinked=tuple(unlinked))


# ---------------------------------------------------------------------------
# Import into a project
# ---------------------------------------------------------------------------


def import_skill(
    *,
    agent_registry: AgentRegistry,
    agents: Mapping[str, Agent],
    skill: str,
    project_root: Path,
    agent_id: str | None = None,
    to: Path | None = None,
) -> tuple[str, Path]:
    """Copy a global skill into a project; returns (source agent, destination)."""

    if agent_id is not None:
        agent = agents.get(agent_id)
        if agent is None or not agent.detected:
            raise UnknownAgentError(agent_id=agent_id)
        if not agent_registry.has_skill(skill, agent_id):
            raise UnknownSkillError(skill_name=skill, where=agent_id)
        source_agent = agent_id
    else:
        source_agent = next(
            (aid for aid, a in agents.items() if a.detected and agent_registry.has_skill(skill, aid)),
            "",
        )
        if not source_agent:
            raise UnknownSkillError(skill_name=skill)

    if to is not None:
        dst = to / skill
    else:
        dst = project_root / agents[source_agent].project_dir / skill
    if dst.exists() or dst.is_symlink():
        raise TargetExistsError(path=dst)

    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(agent_registry.skill_path(skill, source_agent), dst)
    return source_agent, dst

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .agents import AgentRegistry
from .errors import SkillyardError
from .matrix import SkillMatrixBuilder, absent_agents, present_agents
from .models import Agent, SkillMatrixRow
from .snapshot import SnapshotStore
from .symlinks import is_symlink


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncOutcome:
    """Per-target result of one sync/resolve action.

    Targets are attempted independently; a failure on one target does not stop
    the others and nothing is rolled back.
    """

    skill: str
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {"skill": self.skill, "succeeded": list(self.succeeded), "failed": dict(self.failed)}


class SkillSyncer:
    def __init__(self, registry: AgentRegistry, agents: Mapping[str, Agent]) -> None:
        self.registry = registry
        self.agents = agents

    def _detected(self) -> list[str]:
        return [aid for aid, a in self.agents.items() if a.detected]

    def sync_unique(self, skill_name: str, source_agent: str, *, targets: list[str] | None = None) -> SyncOutcome:
        """Copy `skill_name` from `source_agent` to detected agents that lack it."""

        self.registry.agent(source_agent)
        if targets is None:
            targets = [
                aid
                for aid in self._detected()
                if aid != source_agent and not self.registry.has_skill(skill_name, aid)
            ]

        out = SyncOutcome(skill=skill_name)
        for aid in targets:
            try:
                self.registry.copy_skill(skill_name, source_agent, aid)
            except (OSError, SkillyardError) as e:
                logger.warning("sync %s -> %s failed: %s", skill_name, aid, e)
                out.failed[aid] = str(e)
                continue
            out.succeeded.append(aid)
        return out

    def resolve_conflict(self, skill_name: str, winner_agent: str, loser_agents: list[str]) -> SyncOutcome:
        """Replace every loser's copy with the winner's (last writer wins, no merge)."""

        self.registry.agent(winner_agent)
        out = SyncOutcome(skill=skill_name)
        for aid in loser_agents:
            if aid == winner_agent:
                continue
            try:
                if self.registry.skill_path(skill_name, aid).exists():
                    self.registry.delete_skill(skill_name, aid)
                self.registry.copy_skill(skill_name, winner_agent, aid)
            except (OSError, SkillyardError) as e:
                logger.warning("resolve %s on %s failed: %s", skill_name, aid, e)
                out.failed[aid] = str(e)
                continue
            out.succeeded.append(aid)
        return out


# ---------------------------------------------------------------------------
# Planning + orchestration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlannedCopy:
    skill: str
    source: str
    targets: tuple[str, ...]


@dataclass(frozen=True)
class PlannedResolution:
    skill: str
    winner: str
    losers: tuple[str, ...]


@dataclass(frozen=True)
class SyncPlan:
    copies: tuple[PlannedCopy, ...] = ()
    resolutions: tuple[PlannedResolution, ...] = ()
    unresolved: tuple[SkillMatrixRow, ...] = ()  # conflicts left for the user
    affected: tuple[SkillMatrixRow, ...] = ()  # every unique/conflict row

    @property
    def is_empty(self) -> bool:
        return not self.copies and not self.resolutions


def plan_sync(rows: list[SkillMatrixRow], *, source_agent: str | None = None) -> SyncPlan:
    """Decide what a sync would do, without touching disk.

    Unique skills are copied everywhere they are missing. Conflicts are only
    resolved when a source agent is named and holds a copy.
    """

    copies: list[PlannedCopy] = []
    resolutions: list[PlannedResolution] = []
    unresolved: list[SkillMatrixRow] = []
    affected: list[SkillMatrixRow] = []

    for row in rows:
        if row.status == "unique":
            affected.append(row)
            (src,) = present_agents(row)
            targets = absent_agents(row)
            if targets:
                copies.append(PlannedCopy(skill=row.skill_name, source=src, targets=tuple(targets)))
        elif row.status == "conflict":
            affected.append(row)
            holders = present_agents(row)
            if source_agent and source_agent in holders:
                losers = tuple(a for a in holders if a != source_agent)
                resolutions.append(PlannedResolution(skill=row.skill_name, winner=source_agent, losers=losers))
            else:
                unresolved.append(row)

    return SyncPlan(
        copies=tuple(copies),
        resolutions=tuple(resolutions),
        unresolved=tuple(unresolved),
        affected=tuple(affected),
    )


@dataclass(frozen=True)
class SyncReport:
    rows: list[SkillMatrixRow]
    plan: SyncPlan
    dry_run: bool
    snapshot_id: str | None = None
    outcomes: tuple[SyncOutcome, ...] = ()

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)


def snapshot_paths(
    registry: AgentRegistry,
    rows: list[SkillMatrixRow] | tuple[SkillMatrixRow, ...],
    *,
    overwritten: Mapping[str, tuple[str, ...]] | None = None,
) -> list[Path]:
    """Every present copy of every given skill, across every agent.

    Copies listed in `overwritten` come first so a snapshot keeps the content a
    resolution is about to replace.
    """

    overwritten = overwritten or {}
    paths: list[Path] = []
    for r in rows:
        holders = present_agents(r)
        losers = [a for a in holders if a in overwritten.get(r.skill_name, ())]
        rest = [a for a in holders if a not in losers]
        paths.extend(registry.skill_path(r.skill_name, aid) for aid in (*losers, *rest))
    return paths


def run_sync(
    *,
    registry: AgentRegistry,
    agents: Mapping[str, Agent],
    snapshots: SnapshotStore | None = None,
    source_agent: str | None = None,
    auto_snapshot: bool = True,
    dry_run: bool = False,
) -> SyncReport:
    if source_agent:
        registry.agent(source_agent)

    rows = SkillMatrixBuilder(registry, agents).build()
    plan = plan_sync(rows, source_agent=source_agent)
    if dry_run or plan.is_empty:
        return SyncReport(rows=rows, plan=plan, dry_run=dry_run)

    snapshot_id: str | None = None
    if auto_snapshot and snapshots is not None:
        snapshot_id = snapshots.create_snapshot(
            snapshot_paths(registry, plan.affected, overwritten={r.skill: r.losers for r in plan.resolutions}),
            "pre-sync",
        )

    syncer = SkillSyncer(registry, agents)
    outcomes: list[SyncOutcome] = []
    for c in plan.copies:
        outcomes.append(syncer.sync_unique(c.skill, c.source, targets=list(c.targets)))
    for r in plan.resolutions:
        outcomes.append(syncer.resolve_conflict(r.skill, r.winner, list(r.losers)))

    return SyncReport(rows=rows, plan=plan, dry_run=False, snapshot_id=snapshot_id, outcomes=tuple(outcomes))


@dataclass(frozen=True)
class MigrateResult:
    to_copy: tuple[str, ...]
    skipped: tuple[str, ...]
    dry_run: bool
    snapshot_id: str | None = None
    outcomes: tuple[SyncOutcome, ...] = ()


def migrate(
    *,
    registry: AgentRegistry,
    agents: Mapping[str, Agent],
    from_agent: str,
    to_agent: str,
    snapshots: SnapshotStore | None = None,
    auto_snapshot: bool = True,
    dry_run: bool = False,
) -> MigrateResult:
    """Copy every skill of `from_agent` that `to_agent` does not have yet."""

    registry.agent(from_agent)
    registry.agent(to_agent)

    source = registry.list_skills(from_agent)
    existing = {
        s.name
        for s in source
        if registry.has_skill(s.name, to_agent) or is_symlink(registry.skill_path(s.name, to_agent))
    }
    to_copy = tuple(s.name for s in source if s.name not in existing)
    skipped = tuple(s.name for s in source if s.name in existing)

    if dry_run or not to_copy:
        return MigrateResult(to_copy=to_copy, skipped=skipped, dry_run=dry_run)

    snapshot_id: str | None = None
    if auto_snapshot and snapshots is not None:
        snapshot_id = snapshots.create_snapshot(
            [registry.skill_path(n, from_agent) for n in to_copy],
            f"migrate-{from_agent}-{to_agent}",
        )

    syncer = SkillSyncer(registry, agents)
    outcomes = tuple(syncer.sync_unique(n, from_agent, targets=[to_agent]) for n in to_copy)
    return MigrateResult(to_copy=to_copy, skipped=skipped, dry_run=False, snapshot_id=snapshot_id, outcomes=outcomes)

"""Text rendering for CLI commands.

Every `format_*` function returns a newline-terminated string; the CLI prints
it with `end=""`.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from .doctor import DoctorReport, RepairResult
from .matrix import summarize
from .models import Agent, Registry, SkillMatrixRow
from .snapshot import SnapshotManifest
from .sync import MigrateResult, SyncReport


NAME_WIDTH = 24
COL_WIDTH = 8

_CELL = {"present": "✓", "conflict": "⚠", "absent": "─"}


def _rule(n_cols: int) -> str:
    return "─" * (NAME_WIDTH + n_cols * (COL_WIDTH + 1))


def format_detect(agents: Mapping[str, Agent], skill_counts: Mapping[str, int]) -> str:
    lines: list[str] = ["Agents"]
    for aid, a in agents.items():
        if a.detected:
            n = skill_counts.get(aid, 0)
            lines.append(f"  ✓ {a.display_name:<20} {n} skill(s)  {a.global_dir}")
        else:
            lines.append(f"  ✗ {a.display_name:<20} not installed")
    detected = sum(1 for a in agents.values() if a.detected)
    lines.append("")
    lines.append(f"Detected: {detected}/{len(agents)}")
    return "\n".join(lines) + "\n"


def format_matrix(rows: Sequence[SkillMatrixRow], agents: Mapping[str, Agent]) -> str:
    """Skill x agent grid followed by a status summary.

    `agents` selects (and orders) the columns.
    """

    ids = list(agents)
    header = " ".join(agents[aid].short_display_name[:COL_WIDTH].ljust(COL_WIDTH) for aid in ids)
    lines: list[str] = ["", f"{'Skill':<{NAME_WIDTH}}{header}", _rule(len(ids))]

    for row in rows:
        cells: list[str] = []
        for aid in ids:
            cell = row.per_agent.get(aid)
            if cell is None or not cell.present:
                sym = _CELL["absent"]
            elif row.status == "conflict":
                sym = _CELL["conflict"]
            else:
                sym = _CELL["present"]
            cells.append(sym.center(COL_WIDTH))
        name = row.skill_name[: NAME_WIDTH - 1].ljust(NAME_WIDTH)
        lines.append(f"{name}{' '.join(cells)}")

    counts = summarize(rows)
    lines.append(_rule(len(ids)))
    lines.append(f"✓ synced: {counts['synced']}  ⚠ conflict: {counts['conflict']}  ● unique: {counts['unique']}")
    return "\n".join(lines) + "\n"


def format_sync_report(report: SyncReport) -> str:
    lines: list[str] = []
    plan = report.plan
    if plan.is_empty and not plan.unresolved:
        return "Everything is in sync.\n"

    prefix = "Would copy" if report.dry_run else "Copy"
    for c in plan.copies:
        lines.append(f"{prefix} {c.skill}: {c.source} -> {', '.join(c.targets)}")
    prefix = "Would resolve" if report.dry_run else "Resolve"
    for r in plan.resolutions:
        lines.append(f"{prefix} {r.skill}: {r.winner} wins over {', '.join(r.losers)}")
    for row in plan.unresolved:
        holders = [aid for aid, c in row.per_agent.items() if c.present]
        lines.append(f"Conflict {row.skill_name}: differs across {', '.join(holders)} (pass --source to resolve)")

    if report.snapshot_id:
        lines.append(f"Snapshot: {report.snapshot_id}")
    for o in report.outcomes:
        for aid, err in o.failed.items():
            lines.append(f"FAILED {o.skill} -> {aid}: {err}")
    if report.dry_run:
        lines.append("")
        lines.append("(dry run - no changes made)")
    return "\n".join(lines) + "\n"


def format_migrate(result: MigrateResult, from_name: str, to_name: str) -> str:
    if not result.to_copy:
        return f"Nothing to migrate from {from_name} to {to_name}.\n"
    lines = [f"{'Would copy' if result.dry_run else 'Copied'} {len(result.to_copy)} skill(s) to {to_name}:"]
    failed = {s.skill: s.failed for s in result.outcomes if s.failed}
    for name in result.to_copy:
        mark = "✗" if name in failed else "+"
        lines.append(f"  {mark} {name}")
    if result.skipped:
        lines.append(f"Skipped (already present): {', '.join(result.skipped)}")
    if result.snapshot_id:
        lines.append(f"Snapshot: {result.snapshot_id}")
    return "\n".join(lines) + "\n"


def format_registry(registry: Registry, agents: Mapping[str, Agent]) -> str:
    if not registry.skills:
        return "No managed skills. Run `skillyard adopt` or `skillyard install`.\n"
    lines = ["Managed skills"]
    for name in sorted(registry.skills):
        s = registry.skills[name]
        assigned = [agents[aid].short_display_name if aid in agents else aid for aid in s.assignments]
        lines.append(f"  {name:<{NAME_WIDTH}} {s.source}")
        lines.append(f"    assigned: {', '.join(assigned) if assigned else '(none)'}")
    return "\n".join(lines) + "\n"


def format_doctor(report: DoctorReport) -> str:
    lines: list[str] = []
    for c in report.checks:
        if c.state == "healthy":
            continue
        tag = "rogue" if c.state == "rogue" else "broken"
        lines.append(f"  {tag:<7} {c.skill} ({c.agent}): {c.reason}  {c.path}")
    for skill, aid in report.skipped:
        lines.append(f"  skip    {skill} ({aid}): agent not detected")

    healthy = len(report.healthy)
    summary = f"Healthy: {healthy}  Broken: {len(report.broken)}  Rogue: {len(report.rogue)}"
    if not lines:
        return f"All {healthy} managed skill(s) healthy.\n"
    return "\n".join(["Issues", *lines, "", summary]) + "\n"


def format_repair(result: RepairResult) -> str:
    lines = [f"Repaired: {len(result.fixed)}"]
    for c in result.skipped_rogue:
        lines.append(f"  left rogue {c.skill} ({c.agent}); rerun with --include-rogue to replace")
    for c, err in result.failed:
        lines.append(f"  FAILED {c.skill} ({c.agent}): {err}")
    return "\n".join(lines) + "\n"


def format_snapshots(snaps: Iterable[SnapshotManifest]) -> str:
    snaps = list(snaps)
    if not snaps:
        return "No snapshots available.\n"
    lines = ["Snapshots (newest first)"]
    for s in snaps:
        lines.append(f"  {s.id}  {s.reason:<24} {len(s.skills)} skill(s)")
    return "\n".join(lines) + "\n"


def format_snapshot_detail(s: SnapshotManifest) -> str:
    return (
        f"Snapshot: {s.id}\n"
        f"Reason: {s.reason}\n"
        f"Created: {s.created_at}\n"
        f"Skills: {', '.join(s.skills) if s.skills else '(none)'}\n"
    )

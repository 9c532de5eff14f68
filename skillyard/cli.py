from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from .errors import (
    ArchiveError,
    ConfigError,
    FetchError,
    NotFoundError,
    PolicyViolationError,
    RegistryError,
    UnknownAgentError,
)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="skillyard",
        description="Keep agent skill directories in sync across coding assistants",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = p.add_subparsers(dest="cmd", required=False)

    det = sub.add_parser("detect", help="Detect installed agents and count their skills")
    det.add_argument("--json", dest="json_output", action="store_true")

    st = sub.add_parser("status", help="Skill matrix across detected agents")
    st.add_argument("--agent", type=str, default=None, help="Only show this agent's column")
    st.add_argument("--json", dest="json_output", action="store_true")

    ls = sub.add_parser("list", help="List skills per agent (or managed skills)")
    ls.add_argument("--agent", type=str, default=None)
    ls.add_argument("--managed", action="store_true", help="List the central store registry instead")
    ls.add_argument("--json", dest="json_output", action="store_true")

    sy = sub.add_parser("sync", help="Copy unique skills everywhere; resolve conflicts from --source")
    sy.add_argument("--source", type=str, default=None, help="Agent whose copy wins conflicts")
    sy.add_argument("-n", "--dry-run", action="store_true")
    sy.add_argument("--show-diff", action="store_true", help="Show SKILL.md diffs for unresolved conflicts")
    sy.add_argument("--no-snapshot", action="store_true")

    mg = sub.add_parser("migrate", help="Copy every skill of one agent that another lacks")
    mg.add_argument("from_agent")
    mg.add_argument("to_agent")
    mg.add_argument("-n", "--dry-run", action="store_true")
    mg.add_argument("--no-snapshot", action="store_true")

    ad = sub.add_parser("adopt", help="Move real skill directories into the central store")
    ad.add_argument("-n", "--dry-run", action="store_true")
    ad.add_argument("--prefer", type=str, default=None, help="Agent whose copy wins when copies differ")
    ad.add_argument("--show-diff", action="store_true", help="With --dry-run: diff competing copies")
    ad.add_argument("--no-snapshot", action="store_true")

    ins = sub.add_parser("install", help="Install skills from a git repo or local directory")
    ins.add_argument("source", help="user/repo, git URL or local path")
    ins.add_argument("--skill", dest="skills", action="append", default=None, help="Only install this skill")
    ins.add_argument("--ssh", action="store_true", help="Clone user/repo shorthand over ssh")
    ins.add_argument("--no-submodules", action="store_true")

    up = sub.add_parser("update", help="Check installed skills against their source repos")
    up.add_argument("names", nargs="*")
    up.add_argument("--apply", action="store_true", help="Replace changed skills")
    up.add_argument("--no-submodules", action="store_true")

    asg = sub.add_parser("assign", help="Symlink a managed skill into agents")
    asg.add_argument("skill")
    asg.add_argument("agents", nargs="+")
    asg.add_argument("--file", dest="file_target", type=str, default=None, help="Link one file instead of the dir")

    un = sub.add_parser("unassign", help="Remove a managed skill's symlink from agents")
    un.add_argument("skill")
    un.add_argument("agents", nargs="+")

    uni = sub.add_parser("uninstall", help="Remove managed skills")
    uni.add_argument("names", nargs="+")
    uni.add_argument("--delete-files", action="store_true", help="Also delete the store copy")

    doc = sub.add_parser("doctor", help="Check managed symlinks")
    doc.add_argument("--fix", action="store_true", help="Recreate broken symlinks")
    doc.add_argument("--include-rogue", action="store_true", help="With --fix: also replace rogue copies")
    doc.add_argument("--json", dest="json_output", action="store_true")

    sn = sub.add_parser("snapshots", help="Inspect snapshots")
    sn_sub = sn.add_subparsers(dest="snapshots_cmd", required=False)
    sn_list = sn_sub.add_parser("list")
    sn_list.add_argument("--json", dest="json_output", action="store_true")
    sn_show = sn_sub.add_parser("show")
    sn_show.add_argument("snapshot_id")
    sn_del = sn_sub.add_parser("delete")
    sn_del.add_argument("snapshot_id")

    ud = sub.add_parser("undo", help="Restore the most recent snapshot into every detected agent")
    ud.add_argument("-n", "--dry-run", action="store_true")

    rs = sub.add_parser("restore", help="Restore from a backup archive or a snapshot")
    rs.add_argument("archive", nargs="?", type=Path, default=None)
    rs.add_argument("--snapshot", type=str, default=None)
    rs.add_argument("--to", type=str, default=None, help="Restore into this agent only")
    rs.add_argument("-n", "--dry-run", action="store_true")

    bk = sub.add_parser("backup", help="Export all skills to a .tar.gz archive")
    bk.add_argument("output", type=Path)
    bk.add_argument("--include-config", action="store_true")

    imp = sub.add_parser("import", help="Copy a global skill into a project")
    imp.add_argument("skill")
    imp.add_argument("--agent", type=str, default=None, help="Agent to copy from (default: first holding it)")
    imp.add_argument("--to", type=Path, default=None, help="Destination directory")
    imp.add_argument("--project", type=Path, default=None, help="Project root (default: cwd)")

    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", level=logging.WARNING)
    logging.getLogger("skillyard").setLevel(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        return _run(args)
    except (ConfigError, RegistryError) as e:
        print(f"error: {e}")
        return 2
    except NotFoundError as e:
        print(f"error: {e}")
        return 3
    except FetchError as e:
        print(f"error: {e}")
        return 4
    except PolicyViolationError as e:
        print(f"error: {e}")
        return 5
    except PermissionError as e:
        print(f"error: {e}")
        return 6
    except ArchiveError as e:
        print(f"error: {e}")
        return 1
    except Exception as e:  # pragma: no cover
        print(f"error: {e}")
        return 1


def _context():
    """(config, agents with fresh detection, agent registry)."""

    from .agents import AgentRegistry
    from .config import load_config

    cfg = load_config()
    agents = AgentRegistry(cfg.agents).detect_agents()
    return cfg, agents, AgentRegistry(agents)


def _snapshot_store(cfg):
    from . import paths
    from .snapshot import SnapshotStore

    return SnapshotStore(paths.snapshots_dir(), cfg.snapshots.max_count)


def _skills_store():
    from . import paths
    from .store import SkillsStore

    return SkillsStore(paths.skills_dir())


def _detected(agents):
    return {aid: a for aid, a in agents.items() if a.detected}


def _require_detected(agents, agent_id: str):
    a = agents.get(agent_id)
    if a is None or not a.detected:
        raise UnknownAgentError(agent_id=agent_id)
    return a


def _run(args: argparse.Namespace) -> int:
    if args.cmd is None:
        args.cmd = "status"
        args.agent = None
        args.json_output = False

    if args.cmd == "detect":
        from .cli_status import format_detect

        _cfg, agents, reg = _context()
        counts = {aid: len(reg.list_skills(aid)) for aid in _detected(agents)}
        if args.json_output:
            out = {aid: {"detected": a.detected, "skills": counts.get(aid, 0)} for aid, a in agents.items()}
            print(json.dumps(out, indent=2, sort_keys=True))
        else:
            print(format_detect(agents, counts), end="")
        return 0

    if args.cmd == "status":
        from .cli_status import format_matrix
        from .matrix import SkillMatrixBuilder

        _cfg, agents, reg = _context()
        detected = _detected(agents)
        if not detected:
            print("No agents detected.")
            return 0
        if args.agent:
            _require_detected(agents, args.agent)
        rows = SkillMatrixBuilder(reg, agents).build()
        if args.json_output:
            print(json.dumps([r.to_dict() for r in rows], indent=2, sort_keys=True))
            return 0
        columns = {args.agent: detected[args.agent]} if args.agent else detected
        print(format_matrix(rows, columns), end="")
        return 0

    if args.cmd == "list":
        if args.managed:
            from .cli_status import format_registry
            from .registry import RegistryStore

            _cfg, agents, _reg = _context()
            registry = RegistryStore().load()
            if args.json_output:
                print(json.dumps(registry.to_dict(), indent=2, sort_keys=True))
            else:
                print(format_registry(registry, agents), end="")
            return 0

        from .frontmatter import read_metadata

        _cfg, agents, reg = _context()
        ids = [args.agent] if args.agent else list(_detected(agents))
        if args.agent:
            _require_detected(agents, args.agent)
        listing = {aid: reg.list_skills(aid) for aid in ids}
        if args.json_output:
            out = {aid: [{"name": s.name, "hash": s.tree_hash} for s in skills] for aid, skills in listing.items()}
            print(json.dumps(out, indent=2, sort_keys=True))
            return 0
        for aid, skills in listing.items():
            print(f"{agents[aid].display_name} ({len(skills)})")
            for s in skills:
                desc = read_metadata(s.path).description or ""
                print(f"  {s.name:<24} {desc[:60]}")
        return 0

    if args.cmd == "sync":
        from .cli_status import format_sync_report
        from .diff import diff_markers
        from .sync import run_sync

        cfg, agents, reg = _context()
        source = args.source
        if source is None and cfg.sync.strategy == "source" and cfg.sync.source_agent:
            source = cfg.sync.source_agent
        if source:
            _require_detected(agents, source)
        report = run_sync(
            registry=reg,
            agents=agents,
            snapshots=_snapshot_store(cfg),
            source_agent=source,
            auto_snapshot=cfg.snapshots.auto_snapshot and not args.no_snapshot,
            dry_run=bool(args.dry_run),
        )
        print(format_sync_report(report), end="")
        if args.show_diff:
            for row in report.plan.unresolved:
                holders = [aid for aid, c in row.per_agent.items() if c.present]
                first = holders[0]
                for other in holders[1:]:
                    for line in diff_markers(
                        reg.skill_path(row.skill_name, first),
                        reg.skill_path(row.skill_name, other),
                        old_label=first,
                        new_label=other,
                    ):
                        print(line)
        return 0 if report.ok else 1

    if args.cmd == "migrate":
        from .cli_status import format_migrate
        from .sync import migrate

        cfg, agents, reg = _context()
        src = _require_detected(agents, args.from_agent)
        dst = _require_detected(agents, args.to_agent)
        res = migrate(
            registry=reg,
            agents=agents,
            from_agent=args.from_agent,
            to_agent=args.to_agent,
            snapshots=_snapshot_store(cfg),
            auto_snapshot=cfg.snapshots.auto_snapshot and not args.no_snapshot,
            dry_run=bool(args.dry_run),
        )
        print(format_migrate(res, src.display_name, dst.display_name), end="")
        return 0 if all(o.ok for o in res.outcomes) else 1

    if args.cmd == "adopt":
        from .diff import diff_markers
        from .manage import adopt, default_chooser
        from .registry import RegistryStore

        cfg, agents, reg = _context()
        store = _skills_store()
        reg_store = RegistryStore()
        registry = reg_store.load()

        prefer = args.prefer
        if prefer:
            _require_detected(agents, prefer)

        def choose(name, copies):
            if prefer and any(c.agent_id == prefer for c in copies):
                return prefer
            return default_chooser(name, copies)

        res = adopt(
            registry=registry,
            agent_registry=reg,
            agents=agents,
            store=store,
            choose=choose,
            snapshots=_snapshot_store(cfg),
            auto_snapshot=cfg.snapshots.auto_snapshot and not args.no_snapshot,
            dry_run=bool(args.dry_run),
        )
        if res.is_empty:
            print("Nothing to adopt.")
            return 0

        verb = "Would adopt" if res.dry_run else "Adopted"
        for d in res.adopted:
            extra = f" (over {', '.join(o.agent_id for o in d.others)})" if d.others else ""
            print(f"{verb} {d.name} from {d.winner.agent_id}{extra}")
            if res.dry_run and args.show_diff:
                for o in d.others:
                    for line in diff_markers(d.winner.path, o.path, old_label=d.winner.agent_id, new_label=o.agent_id):
                        print(line)
        verb = "Would link" if res.dry_run else "Linked"
        for c in res.taken_over:
            print(f"{verb} {c.name} in {c.agent_id} to the store copy")
        if res.snapshot_id:
            print(f"Snapshot: {res.snapshot_id}")
        if not res.dry_run:
            reg_store.save(registry)
        return 0

    if args.cmd == "install":
        from .manage import install
        from .registry import RegistryStore

        store = _skills_store()
        reg_store = RegistryStore()
        registry = reg_store.load()
        wanted = args.skills

        res = install(
            source=args.source,
            registry=registry,
            store=store,
            select=(lambda found: wanted) if wanted else None,
            ssh=bool(args.ssh),
            submodules=not args.no_submodules,
        )
        if not res.discovered:
            print(f"No skills found in {res.source}.")
            return 1
        for name in res.installed:
            print(f"+ {name}")
        for name in res.skipped:
            print(f"= {name} (already installed)")
        if wanted:
            found = {d.name for d in res.discovered}
            for name in wanted:
                if name not in found:
                    print(f"? {name} (not in source)")
        reg_store.save(registry)
        return 0

    if args.cmd == "update":
        from .manage import update
        from .registry import RegistryStore

        store = _skills_store()
        reg_store = RegistryStore()
        registry = reg_store.load()
        res = update(
            registry=registry,
            store=store,
            names=args.names or None,
            dry_run=not args.apply,
            submodules=not args.no_submodules,
        )
        if not res.checks:
            print("No remotely installed skills to check.")
            return 0
        for c in res.checks:
            print(f"  {c.name:<24} {c.status}")
        if res.updated:
            print(f"Updated: {', '.join(res.updated)}")
            reg_store.save(registry)
        elif res.dry_run and any(c.status == "update-available" for c in res.checks):
            print("Run with --apply to update.")
        return 0

    if args.cmd in ("assign", "unassign"):
        from .manage import assign, unassign
        from .models import SkillAssignment
        from .registry import RegistryStore

        _cfg, agents, _reg = _context()
        store = _skills_store()
        reg_store = RegistryStore()
        registry = reg_store.load()
        if args.cmd == "assign":
            assignment = (
                SkillAssignment(kind="file", target=args.file_target)
                if args.file_target
                else SkillAssignment(kind="directory")
            )
            res = assign(
                registry=registry,
                store=store,
                agents=agents,
                skill=args.skill,
                agent_ids=args.agents,
                assignment=assignment,
            )
        else:
            res = unassign(registry=registry, store=store, agents=agents, skill=args.skill, agent_ids=args.agents)
        for aid in res.succeeded:
            print(f"{'Assigned' if args.cmd == 'assign' else 'Unassigned'} {args.skill} -> {aid}")
        for aid, err in res.failed.items():
            print(f"FAILED {aid}: {err}")
        if res.succeeded:
            reg_store.save(registry)
        return 0 if res.ok else 1

    if args.cmd == "uninstall":
        from .manage import uninstall
        from .registry import RegistryStore

        _cfg, agents, _reg = _context()
        store = _skills_store()
        reg_store = RegistryStore()
        registry = reg_store.load()
        res = uninstall(
            registry=registry,
            store=store,
            agents=agents,
            names=args.names,
            delete_files=bool(args.delete_files),
        )
        for name in res.removed:
            print(f"- {name}")
        for name in res.not_found:
            print(f"? {name} (not managed)")
        for r in res.unlinked:
            for aid, err in r.failed.items():
                print(f"FAILED {r.skill} ({aid}): {err}")
        if res.removed:
            reg_store.save(registry)
        return 0 if not res.not_found and all(r.ok for r in res.unlinked) else 1

    if args.cmd == "doctor":
        from .cli_status import format_doctor, format_repair
        from .doctor import repair, run_doctor
        from .registry import RegistryStore

        _cfg, agents, _reg = _context()
        registry = RegistryStore().load()
        report = run_doctor(registry=registry, store=_skills_store(), agents=agents)
        if args.json_output:
            out = {
                "ok": report.ok,
                "healthy": report.healthy,
                "checks": [c.to_dict() for c in report.checks],
                "skipped": [list(s) for s in report.skipped],
            }
            print(json.dumps(out, indent=2, sort_keys=True))
        else:
            print(format_doctor(report), end="")
        if args.fix and not report.ok:
            fixed = repair(report, include_rogue=bool(args.include_rogue))
            print(format_repair(fixed), end="")
            return 0 if fixed.ok and not fixed.skipped_rogue else 1
        return 0 if report.ok else 1

    if args.cmd == "snapshots":
        from .cli_status import format_snapshot_detail, format_snapshots

        cfg, _agents, _reg = _context()
        snaps = _snapshot_store(cfg)
        sub = args.snapshots_cmd or "list"
        if sub == "show":
            print(format_snapshot_detail(snaps.get_snapshot(args.snapshot_id)), end="")
            return 0
        if sub == "delete":
            snaps.delete_snapshot(args.snapshot_id)
            print(f"Deleted snapshot {args.snapshot_id}")
            return 0
        listed = snaps.list_snapshots()
        if getattr(args, "json_output", False):
            print(json.dumps([s.to_dict() for s in listed], indent=2, sort_keys=True))
        else:
            print(format_snapshots(listed), end="")
        return 0

    if args.cmd == "undo":
        from .cli_status import format_snapshot_detail

        cfg, agents, _reg = _context()
        snaps = _snapshot_store(cfg)
        latest = snaps.get_latest_snapshot()
        if latest is None:
            print("No snapshots available.")
            return 0
        print(format_snapshot_detail(latest), end="")
        if args.dry_run:
            print("(dry run - no changes made)")
            return 0
        for aid, a in _detected(agents).items():
            snaps.restore(latest.id, a.skills_root)
            print(f"Restored to {a.display_name}")
        return 0

    if args.cmd == "restore":
        from .archive import read_backup, restore_backup
        from .cli_status import format_snapshot_detail

        cfg, agents, _reg = _context()
        targets = [_require_detected(agents, args.to)] if args.to else list(_detected(agents).values())

        if args.snapshot:
            snaps = _snapshot_store(cfg)
            print(format_snapshot_detail(snaps.get_snapshot(args.snapshot)), end="")
            if args.dry_run:
                print("(dry run - no changes made)")
                return 0
            for a in targets:
                snaps.restore(args.snapshot, a.skills_root)
                print(f"Restored to {a.display_name}")
            return 0

        if args.archive is None:
            print("error: pass a backup archive or --snapshot ID")
            return 2
        if args.dry_run:
            manifest = read_backup(args.archive)
            print(f"Backup created: {manifest.created_at}")
            print("Would restore:")
            for name in manifest.skills:
                print(f"  {name}")
            print("(dry run - no changes made)")
            return 0
        manifest = restore_backup(args.archive, [a.skills_root for a in targets])
        for a in targets:
            print(f"Restored {len(manifest.skills)} skill(s) to {a.display_name}")
        return 0

    if args.cmd == "backup":
        from . import paths
        from .archive import collect_unique, create_backup

        _cfg, agents, reg = _context()
        skills = collect_unique({aid: reg.list_skills(aid) for aid in _detected(agents)})
        if not skills:
            print("No skills to back up.")
            return 0
        manifest = create_backup(
            skills,
            args.output,
            config_file=paths.config_path() if args.include_config else None,
        )
        print(f"Backup created: {args.output}")
        print(f"Skills: {len(manifest.skills)}")
        print(f"Config included: {manifest.includes_config}")
        return 0

    if args.cmd == "import":
        from .manage import import_skill

        _cfg, agents, reg = _context()
        source_agent, dst = import_skill(
            agent_registry=reg,
            agents=agents,
            skill=args.skill,
            project_root=(args.project or Path.cwd()).resolve(),
            agent_id=args.agent,
            to=args.to,
        )
        print(f"Imported {args.skill} from {agents[source_agent].display_name} to {dst}")
        return 0

    raise ValueError(f"unknown command: {args.cmd}")

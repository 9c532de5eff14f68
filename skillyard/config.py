from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any

from . import paths
from .errors import ConfigParseError, ConfigValidationError
from .models import Agent, Config, SnapshotConfig, SyncConfig
from .toml_write import dump_tables


try:  # Python 3.11+
    import tomllib as _tomllib  # type: ignore
except ModuleNotFoundError:  # pragma: no cover (dev envs < 3.11)
    import tomli as _tomllib  # type: ignore


# id, display name, short name (<= 8 chars), global skills dir, project skills dir
AGENT_DEFINITIONS: tuple[tuple[str, str, str, str, str], ...] = (
    ("claude", "Claude Code", "Claude", "~/.claude/skills", ".claude/skills"),
    ("cursor", "Cursor", "Cursor", "~/.cursor/skills", ".cursor/skills"),
    ("codex", "Codex", "Codex", "~/.codex/skills", ".codex/skills"),
    ("copilot", "GitHub Copilot", "Copilot", "~/.copilot/skills", ".github/skills"),
    ("gemini", "Gemini CLI", "Gemini", "~/.gemini/skills", ".gemini/skills"),
    ("windsurf", "Windsurf", "Windsurf", "~/.codeium/windsurf/skills", ".windsurf/skills"),
    ("amp", "Amp", "Amp", "~/.config/agents/skills", ".agents/skills"),
    ("goose", "Goose", "Goose", "~/.config/goose/skills", ".goose/skills"),
    ("opencode", "OpenCode", "OpenCode", "~/.config/opencode/skills", ".opencode/skills"),
    ("kilo", "Kilo Code", "Kilo", "~/.kilocode/skills", ".kilocode/skills"),
    ("roo", "Roo Code", "Roo", "~/.roo/skills", ".roo/skills"),
    ("antigravity", "Antigravity", "Antigrav", "~/.gemini/antigravity/skills", ".agent/skills"),
    ("clawdbot", "Clawdbot", "Clawdbot", "~/.clawdbot/skills", "skills"),
    ("droid", "Droid", "Droid", "~/.factory/skills", ".factory/skills"),
)

_SYNC_STRATEGIES = {"union", "source"}
_AGENT_KEYS = {"name", "shortName", "globalPath", "projectPath"}
_TOP_KEYS = {"agents", "sync", "snapshots"}


def default_agents() -> dict[str, Agent]:
    return {
        aid: Agent(id=aid, display_name=name, short_display_name=short, global_dir=gp, project_dir=pp)
        for aid, name, short, gp, pp in AGENT_DEFINITIONS
    }


def default_config() -> Config:
    return Config(agents=default_agents(), sync=SyncConfig(), snapshots=SnapshotConfig())


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigValidationError(path=path, message=f"unable to read file: {e}") from e

    try:
        data = _tomllib.loads(text)
    except _tomllib.TOMLDecodeError as e:
        msg = getattr(e, "msg", str(e))
        lineno = getattr(e, "lineno", None)
        colno = getattr(e, "colno", None)
        raise ConfigParseError(path=path, message=str(msg), lineno=lineno, colno=colno) from e
    return data


def _unknown_keys_message(where: str, unknown: set[str]) -> str:
    keys = ", ".join(sorted(unknown))
    return f"{where}: unknown keys: {keys}"


def _require_table(path: Path, value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigValidationError(path=path, message=f"{where}: expected table")
    return value


def _optional_str(path: Path, value: Any, where: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigValidationError(path=path, message=f"{where}: expected string")
    return value


def _optional_bool(path: Path, value: Any, where: str) -> bool | None:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ConfigValidationError(path=path, message=f"{where}: expected bool")
    return value


def _optional_positive_int(path: Path, value: Any, where: str) -> int | None:
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigValidationError(path=path, message=f"{where}: expected positive integer")
    return value


def _merge_agent(path: Path, aid: str, raw: Any, base: Agent | None) -> Agent:
    tbl = _require_table(path, raw, f"agents.{aid}")
    unknown = set(tbl) - _AGENT_KEYS
    if unknown:
        raise ConfigValidationError(path=path, message=_unknown_keys_message(f"agents.{aid}", unknown))

    name = _optional_str(path, tbl.get("name"), f"agents.{aid}.name")
    short = _optional_str(path, tbl.get("shortName"), f"agents.{aid}.shortName")
    global_dir = _optional_str(path, tbl.get("globalPath"), f"agents.{aid}.globalPath")
    project_dir = _optional_str(path, tbl.get("projectPath"), f"agents.{aid}.projectPath")

    if base is None:
        if global_dir is None:
            raise ConfigValidationError(path=path, message=f"agents.{aid}.globalPath: required for custom agents")
        display = name or aid
        return Agent(
            id=aid,
            display_name=display,
            # First word of the display name, else the id.
            short_display_name=short or display.split(" ")[0] or aid,
            global_dir=global_dir,
            project_dir=project_dir or "",
        )

    return replace(
        base,
        display_name=name if name is not None else base.display_name,
        short_display_name=short if short is not None else base.short_display_name,
        global_dir=global_dir if global_dir is not None else base.global_dir,
        project_dir=project_dir if project_dir is not None else base.project_dir,
    )


def parse_config(data: dict[str, Any], *, path: Path) -> Config:
    """Merge a parsed config.toml over the defaults (per table and per agent)."""

    unknown = set(data) - _TOP_KEYS
    if unknown:
        raise ConfigValidationError(path=path, message=_unknown_keys_message("config", unknown))

    defaults = default_config()

    agents = dict(defaults.agents)
    raw_agents = data.get("agents")
    if raw_agents is not None:
        for aid, raw in _require_table(path, raw_agents, "agents").items():
            agents[aid] = _merge_agent(path, aid, raw, agents.get(aid))

    sync = defaults.sync
    raw_sync = data.get("sync")
    if raw_sync is not None:
        tbl = _require_table(path, raw_sync, "sync")
        strategy = _optional_str(path, tbl.get("strategy"), "sync.strategy")
        if strategy is not None and strategy not in _SYNC_STRATEGIES:
            raise ConfigValidationError(path=path, message=f"sync.strategy: expected one of {sorted(_SYNC_STRATEGIES)}")
        source = _optional_str(path, tbl.get("sourceAgent"), "sync.sourceAgent")
        sync = SyncConfig(
            strategy=strategy or sync.strategy,  # type: ignore[arg-type]
            source_agent=source if source is not None else sync.source_agent,
        )

    snaps = defaults.snapshots
    raw_snaps = data.get("snapshots")
    if raw_snaps is not None:
        tbl = _require_table(path, raw_snaps, "snapshots")
        max_count = _optional_positive_int(path, tbl.get("maxCount"), "snapshots.maxCount")
        auto = _optional_bool(path, tbl.get("autoSnapshot"), "snapshots.autoSnapshot")
        snaps = SnapshotConfig(
            max_count=max_count if max_count is not None else snaps.max_count,
            auto_snapshot=auto if auto is not None else snaps.auto_snapshot,
        )

    if sync.strategy == "source" and sync.source_agent and sync.source_agent not in agents:
        raise ConfigValidationError(path=path, message=f"sync.sourceAgent: unknown agent {sync.source_agent!r}")

    return Config(agents=agents, sync=sync, snapshots=snaps)


def load_config(path: Path | None = None) -> Config:
    """Load config.toml; a missing file yields the defaults."""

    path = path or paths.config_path()
    if not path.exists():
        return default_config()
    return parse_config(_load_toml(path), path=path)


def render_config(cfg: Config) -> str:
    tables: list[tuple[list[str], dict[str, Any]]] = []
    for aid, agent in cfg.agents.items():
        tables.append((["agents", aid], agent.to_dict()))
    tables.append((["sync"], {"strategy": cfg.sync.strategy, "sourceAgent": cfg.sync.source_agent}))
    tables.append(
        (["snapshots"], {"maxCount": cfg.snapshots.max_count, "autoSnapshot": cfg.snapshots.auto_snapshot})
    )
    return dump_tables(tables)


def save_config(cfg: Config, path: Path | None = None) -> Path:
    path = path or paths.config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(render_config(cfg), encoding="utf-8")
    tmp.replace(path)
    return path

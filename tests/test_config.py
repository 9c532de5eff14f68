from __future__ import annotations

from pathlib import Path

import pytest

from skillyard.config import AGENT_DEFINITIONS, default_config, load_config, render_config, save_config
from skillyard.errors import ConfigParseError, ConfigValidationError
from skillyard.models import Config, SnapshotConfig, SyncConfig


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "config.toml")
    assert list(cfg.agents) == [d[0] for d in AGENT_DEFINITIONS]
    assert cfg.snapshots == SnapshotConfig(max_count=10, auto_snapshot=True)
    assert cfg.sync == SyncConfig(strategy="union", source_agent="")
    assert all(len(a.short_display_name) <= 8 for a in cfg.agents.values())


def test_partial_file_merges_over_defaults(tmp_path: Path) -> None:
    p = tmp_path / "config.toml"
    p.write_text(
        """
[agents.claude]
globalPath = "/opt/claude/skills"

[agents.mytool]
name = "My Tool"
globalPath = "~/.mytool/skills"

[snapshots]
maxCount = 3
""",
        encoding="utf-8",
    )
    cfg = load_config(p)
    assert cfg.agents["claude"].global_dir == "/opt/claude/skills"
    assert cfg.agents["claude"].display_name == "Claude Code"
    assert cfg.agents["mytool"].short_display_name == "My"
    assert cfg.agents["mytool"].project_dir == ""
    assert cfg.snapshots.max_count == 3
    assert cfg.snapshots.auto_snapshot is True


def test_invalid_toml_reports_location(tmp_path: Path) -> None:
    p = tmp_path / "config.toml"
    p.write_text("[sync\nstrategy = 1\n", encoding="utf-8")
    with pytest.raises(ConfigParseError) as ei:
        load_config(p)
    assert str(p) in str(ei.value)


@pytest.mark.parametrize(
    "body",
    [
        "[bogus]\nx = 1\n",
        "[sync]\nstrategy = \"newest\"\n",
        "[snapshots]\nmaxCount = 0\n",
        "[snapshots]\nautoSnapshot = \"yes\"\n",
        "[agents.custom]\nname = \"No Path\"\n",
        "[agents.claude]\ncolor = \"red\"\n",
        "[sync]\nstrategy = \"source\"\nsourceAgent = \"nobody\"\n",
    ],
)
def test_validation_errors(tmp_path: Path, body: str) -> None:
    p = tmp_path / "config.toml"
    p.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        load_config(p)


def test_save_then_load(tmp_path: Path) -> None:
    base = default_config()
    cfg = Config(
        agents=base.agents,
        sync=SyncConfig(strategy="source", source_agent="claude"),
        snapshots=SnapshotConfig(max_count=4, auto_snapshot=False),
    )
    p = save_config(cfg, tmp_path / "sub" / "config.toml")
    assert load_config(p) == cfg
    # Rendering is deterministic.
    assert render_config(cfg) == p.read_text(encoding="utf-8")

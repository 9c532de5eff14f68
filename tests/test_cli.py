from __future__ import annotations

import json
from pathlib import Path

from skillyard.cli import main


def _setup(home: Path, make_skill) -> tuple[Path, Path]:
    claude = home / ".claude" / "skills"
    cursor = home / ".cursor" / "skills"
    make_skill(claude, "fmt", description="Format things")
    (home / ".cursor").mkdir()
    return claude, cursor


def test_detect_and_status(home: Path, make_skill, capsys) -> None:
    _setup(home, make_skill)

    assert main(["detect", "--json"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["claude"] == {"detected": True, "skills": 1}
    assert out["cursor"] == {"detected": True, "skills": 0}
    assert out["codex"]["detected"] is False

    assert main(["status"]) == 0
    text = capsys.readouterr().out
    assert "fmt" in text
    assert "unique: 1" in text

    assert main([]) == 0
    assert "fmt" in capsys.readouterr().out


def test_sync_snapshot_and_undo(home: Path, make_skill, capsys) -> None:
    claude, cursor = _setup(home, make_skill)

    assert main(["sync", "--dry-run"]) == 0
    assert "Would copy fmt" in capsys.readouterr().out
    assert not (cursor / "fmt").exists()

    assert main(["sync"]) == 0
    capsys.readouterr()
    assert (cursor / "fmt" / "SKILL.md").exists()

    assert main(["snapshots", "list", "--json"]) == 0
    snaps = json.loads(capsys.readouterr().out)
    assert [s["reason"] for s in snaps] == ["pre-sync"]

    (claude / "fmt" / "SKILL.md").write_text("broken", encoding="utf-8")
    assert main(["undo"]) == 0
    assert "Format things" in (claude / "fmt" / "SKILL.md").read_text(encoding="utf-8")


def test_adopt_then_doctor(home: Path, make_skill, capsys) -> None:
    claude, _cursor = _setup(home, make_skill)

    assert main(["adopt"]) == 0
    assert "Adopted fmt from claude" in capsys.readouterr().out
    assert (claude / "fmt").is_symlink()

    assert main(["doctor"]) == 0
    assert "healthy" in capsys.readouterr().out

    assert main(["assign", "fmt", "cursor"]) == 0
    capsys.readouterr()
    assert (home / ".cursor" / "skills" / "fmt").is_symlink()

    (claude / "fmt").unlink()
    assert main(["doctor"]) == 1
    assert "symlink missing" in capsys.readouterr().out
    assert main(["doctor", "--fix"]) == 0
    capsys.readouterr()
    assert (claude / "fmt").is_symlink()

    assert main(["list", "--managed", "--json"]) == 0
    reg = json.loads(capsys.readouterr().out)
    assert set(reg["skills"]["fmt"]["assignments"]) == {"claude", "cursor"}


def test_backup_restore_and_import(home: Path, make_skill, tmp_path: Path, capsys) -> None:
    _claude, cursor = _setup(home, make_skill)
    archive = tmp_path / "out" / "skills.tar.gz"

    assert main(["backup", str(archive)]) == 0
    assert archive.exists()

    assert main(["restore", str(archive), "--to", "cursor"]) == 0
    assert (cursor / "fmt" / "SKILL.md").exists()

    project = tmp_path / "proj"
    project.mkdir()
    assert main(["import", "fmt", "--agent", "claude", "--project", str(project)]) == 0
    assert (project / ".claude" / "skills" / "fmt" / "SKILL.md").exists()
    assert main(["import", "fmt", "--agent", "claude", "--project", str(project)]) == 5


def test_error_exit_codes(home: Path, make_skill, capsys) -> None:
    _setup(home, make_skill)

    assert main(["assign", "nope", "claude"]) == 3
    assert "nope" in capsys.readouterr().out
    assert main(["migrate", "claude", "codex"]) == 3
    assert main(["snapshots", "show", "2020-01-01T00-00-00-000Z"]) == 3

    cfg = home / ".config" / "skillyard" / "config.toml"
    cfg.parent.mkdir(parents=True, exist_ok=True)
    cfg.write_text("[sync]\nstrategy = \"newest\"\n", encoding="utf-8")
    assert main(["status"]) == 2
    assert "sync.strategy" in capsys.readouterr().out

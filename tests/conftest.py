from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    """Isolated home directory; skillyard state lives under it too."""

    h = tmp_path / "home"
    h.mkdir()
    monkeypatch.setenv("HOME", str(h))
    monkeypatch.setattr(Path, "home", lambda: h)
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.setenv("SKILLYARD_HOME", str(h / ".config" / "skillyard"))
    return h


@pytest.fixture
def make_skill():
    def _make(root: Path, name: str, body: str = "Do the thing.\n", **front: str) -> Path:
        d = root / name
        d.mkdir(parents=True, exist_ok=True)
        header = "".join(f"{k}: {v}\n" for k, v in {"name": name, **front}.items())
        (d / "SKILL.md").write_text(f"---\n{header}---\n\n{body}", encoding="utf-8")
        return d

    return _make


def run_git(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.email=t@example.com", "-c", "user.name=t", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def git_repo():
    """Factory: commit `files` into a fresh repository at `root`."""

    if shutil.which("git") is None:
        pytest.skip("git not installed")

    def _make(root: Path, files: dict[str, str]) -> Path:
        root.mkdir(parents=True)
        for rel, content in files.items():
            p = root / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(content, encoding="utf-8")
        run_git(root, "init", "-q")
        run_git(root, "add", "-A")
        run_git(root, "commit", "-q", "-m", "init")
        return root

    return _make


@pytest.fixture
def git():
    return run_git

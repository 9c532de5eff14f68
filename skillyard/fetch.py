from __future__ import annotations

import configparser
import logging
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .errors import FetchError
from .models import InstallProtocol
from .paths import expand_path


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkillSource:
    repo: str  # identifier recorded in the registry
    protocol: InstallProtocol
    url: str | None = None  # clone URL for remote sources
    path: Path | None = None  # directory for local sources

    @property
    def is_local(self) -> bool:
        return self.protocol == "local"


def repo_url(repo: str, protocol: InstallProtocol) -> str:
    if "://" in repo or repo.startswith("git@"):
        return repo
    if protocol == "ssh":
        return f"git@github.com:{repo}.git"
    return f"https://github.com/{repo}"


def parse_source(source: str, *, ssh: bool = False) -> SkillSource:
    """Classify `source` as a local directory, a git URL or a `user/repo` shorthand."""

    s = source.strip()
    if not s:
        raise FetchError("empty source")

    if s.startswith(("/", ".", "~")) or expand_path(s).is_dir():
        p = expand_path(s).resolve()
        if not p.is_dir():
            raise FetchError(f"local source not found: {p}")
        return SkillSource(repo=str(p), protocol="local", path=p)

    if s.startswith("git@") or s.startswith("ssh://"):
        return SkillSource(repo=s, protocol="ssh", url=s)
    if "://" in s:
        return SkillSource(repo=s, protocol="https", url=s)
    if "/" in s:
        protocol: InstallProtocol = "ssh" if ssh else "https"
        return SkillSource(repo=s, protocol=protocol, url=repo_url(s, protocol))
    raise FetchError(f"unrecognized source: {source!r} (expected user/repo, a git URL or a local path)")


def _git(args: list[str], *, cwd: Path | None = None) -> None:
    subprocess.run(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )


def clone_shallow(url: str, dest: Path) -> None:
    if shutil.which("git") is None:
        raise FetchError("git not available")
    logger.info("cloning %s", url)
    try:
        _git(["clone", "--quiet", "--depth", "1", url, str(dest)])
    except subprocess.CalledProcessError as e:
        raise FetchError(f"git clone failed for {url}: {(e.stderr or '').strip()}") from e


def _resolve_submodule_url(parent_url: str, url: str) -> str:
    if not url.startswith(("./", "../")):
        return url
    base = parent_url.rstrip("/")
    if base.endswith(".git"):
        base = base[: -len(".git")]
    for seg in url.split("/"):
        if seg == "..":
            base = base.rsplit("/", 1)[0]
        elif seg and seg != ".":
            base = f"{base}/{seg}"
    return base


def read_submodules(checkout: Path) -> list[tuple[str, str]]:
    """(path, url) pairs from `.gitmodules`, in file order."""

    gm = checkout / ".gitmodules"
    if not gm.is_file():
        return []
    cp = configparser.ConfigParser()
    cp.read(gm, encoding="utf-8")
    out: list[tuple[str, str]] = []
    for section in cp.sections():
        if not section.startswith("submodule"):
            continue
        path = cp.get(section, "path", fallback=None)
        url = cp.get(section, "url", fallback=None)
        if path and url:
            out.append((path, url))
    return out


def fetch_submodules(checkout: Path, parent_url: str) -> list[str]:
    """Shallow-clone each submodule into place; failures are logged and skipped.

    Returns the submodule paths that were fetched.
    """

    fetched: list[str] = []
    for sub_path, url in read_submodules(checkout):
        dest = checkout / sub_path
        if dest.exists() and any(dest.iterdir()):
            continue
        if dest.exists():
            dest.rmdir()
        try:
            clone_shallow(_resolve_submodule_url(parent_url, url), dest)
        except FetchError as e:
            logger.warning("skipping submodule %s: %s", sub_path, e)
            continue
        fetched.append(sub_path)
    return fetched


@contextmanager
def checkout_source(source: SkillSource, *, submodules: bool = True) -> Iterator[Path]:
    """Yield a local directory with the source's content.

    Local sources are used in place; remote ones are cloned into a temporary
    directory that is removed on exit.
    """

    if source.is_local:
        assert source.path is not None
        yield source.path
        return

    assert source.url is not None
    with tempfile.TemporaryDirectory(prefix="skillyard-fetch-") as tmp:
        dest = Path(tmp) / "repo"
        clone_shallow(source.url, dest)
        if submodules:
            fetch_submodules(dest, source.url)
        yield dest

"""Content-addressed identity for skill directories.

A tree hash is a pure function of the sorted `(relative path, sha256)` pairs of
every regular file under a root:

    sha256("\n".join(f"{path}:{digest}" for path, digest in sorted(pairs)))

Empty directories do not contribute. Paths always use `/` and are sorted on
their UTF-8 bytes so the result does not depend on platform or locale.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from .errors import TreeDepthError
from .models import SkillFile, TreeIdentity


MAX_TREE_DEPTH = 64
_CHUNK = 1024 * 1024


def hash_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def collect_files(root: Path, *, max_depth: int = MAX_TREE_DEPTH) -> list[Path]:
    """Return every regular file under `root` (symlinks resolved by the OS).

    Traversal is iterative. A directory symlink pointing at one of its own
    ancestors is a cycle and is not descended; any other link is followed.
    """

    files: list[Path] = []
    stack: list[tuple[Path, int, frozenset[tuple[int, int]]]] = [(root, 0, frozenset())]
    while stack:
        cur, depth, ancestors = stack.pop()
        if depth > max_depth:
            raise TreeDepthError(root=root, depth=max_depth)
        st = cur.stat()
        key = (st.st_dev, st.st_ino)
        if key in ancestors:
            continue
        ancestors = ancestors | {key}

        with os.scandir(cur) as it:
            entries = list(it)
        for entry in entries:
            p = Path(entry.path)
            if entry.is_dir():  # follows symlinks
                stack.append((p, depth + 1, ancestors))
            elif entry.is_file():
                files.append(p)
    return files


def _sort_key(f: SkillFile) -> bytes:
    return f.path.encode("utf-8")


def tree_hash_of(files: list[SkillFile] | tuple[SkillFile, ...]) -> str:
    ordered = sorted(files, key=_sort_key)
    content = "\n".join(f"{f.path}:{f.content_hash}" for f in ordered)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def hash_tree(root: Path) -> TreeIdentity:
    """Compute the TreeIdentity of `root`.

    Any unreadable file aborts the whole computation (the OSError propagates).
    """

    entries = [
        SkillFile(path=p.relative_to(root).as_posix(), content_hash=hash_file(p))
        for p in collect_files(root)
    ]
    entries.sort(key=_sort_key)
    return TreeIdentity(tree_hash=tree_hash_of(entries), files=tuple(entries))

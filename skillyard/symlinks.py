from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from .errors import ManagedPathConflictError


logger = logging.getLogger(__name__)


def is_symlink(path: Path) -> bool:
    try:
        return path.is_symlink()
    except OSError:
        return False


def read_symlink_target(path: Path) -> Path | None:
    """Return the raw link target of `path`, or None if it is not a symlink."""

    try:
        return Path(os.readlink(path))
    except (FileNotFoundError, OSError):
        return None


def resolve_link_target(link: Path) -> Path | None:
    """Return the link target as an absolute path (relative targets resolve from the link's parent)."""

    raw = read_symlink_target(link)
    if raw is None:
        return None
    if not raw.is_absolute():
        raw = link.parent / raw
    return Path(os.path.normpath(raw))


def create_symlink(source: Path, target: Path) -> None:
    """Make `target` a symlink pointing at `source`.

    - already a link to `source`: no-op
    - a link elsewhere (or dangling): replaced
    - a real file or directory: ManagedPathConflictError
    """

    target.parent.mkdir(parents=True, exist_ok=True)

    if is_symlink(target):
        current = resolve_link_target(target)
        if current == Path(os.path.normpath(source)):
            return
        logger.debug("replacing symlink %s (was -> %s)", target, current)
        target.unlink()
    elif target.exists():
        raise ManagedPathConflictError(path=target)

    target.symlink_to(source, target_is_directory=source.is_dir())


def remove_symlink(path: Path) -> None:
    """Remove a symlink; a missing path is success, a real entry is refused."""

    if not is_symlink(path):
        if path.exists():
            raise ManagedPathConflictError(path=path)
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def remove_managed_path(path: Path) -> None:
    """Remove whatever occupies `path` (symlink, file or directory tree).

    Only call this after the caller has confirmed the destruction; it is the
    escape hatch for the conflict guard in create_symlink/remove_symlink.
    """

    if is_symlink(path) or path.is_file():
        path.unlink(missing_ok=True)
        return
    if path.is_dir():
        shutil.rmtree(path)

"""Linking keg contents into the prefix and removing those links again."""

from __future__ import annotations

import os
import stat
from pathlib import Path

from .errors import LinkCollisionError, MissingParentDirectoryError
from .fsutil import walk_entries

LINKABLE_DIRS = ("bin", "sbin", "lib", "include", "share", "etc")


def link(keg_path: str | os.PathLike[str], prefix: str | os.PathLike[str]) -> None:
    """Create relative symlinks in ``prefix`` for every linkable keg entry.

    Raises ``LinkCollisionError`` when a target exists and does not belong
    to this keg.
    """
    keg_path = Path(keg_path)
    prefix = Path(prefix)
    for dir_name in LINKABLE_DIRS:
        keg_subdir = keg_path / dir_name
        if not keg_subdir.is_dir():
            continue

        for entry in walk_entries(keg_subdir):
            link_path = prefix / dir_name / entry.relative_to(keg_subdir)

            if _is_self_referential(entry, link_path):
                continue

            _check_link_collision(link_path, keg_path)

            if os.path.lexists(link_path):
                os.remove(link_path)

            parent = link_path.parent
            if parent == link_path:
                raise MissingParentDirectoryError(link_path)
            parent.mkdir(parents=True, exist_ok=True)
            os.symlink(relative_from_to(parent, entry), link_path)


def unlink(keg_path: str | os.PathLike[str], prefix: str | os.PathLike[str]) -> None:
    """Remove prefix symlinks that point into ``keg_path``.

    Parent directories emptied by the removal are pruned, stopping at the
    top-level linkable directory.
    """
    keg_path = Path(keg_path)
    prefix = Path(prefix)
    for dir_name in LINKABLE_DIRS:
        keg_subdir = keg_path / dir_name
        if not keg_subdir.is_dir():
            continue

        for entry in walk_entries(keg_subdir):
            link_path = prefix / dir_name / entry.relative_to(keg_subdir)
            if not link_path.is_symlink():
                continue

            resolved = _normalize_path(link_path.parent / os.readlink(link_path))
            if _starts_with(resolved, keg_path):
                os.remove(link_path)
                _remove_empty_parents(link_path, prefix / dir_name)


def relative_from_to(
    from_dir: str | os.PathLike[str], to_path: str | os.PathLike[str]
) -> Path:
    """Return the relative path leading from ``from_dir`` to ``to_path``."""
    from_parts = Path(from_dir).parts
    to_parts = Path(to_path).parts

    common = 0
    for a, b in zip(from_parts, to_parts):
        if a != b:
            break
        common += 1

    return Path(*([".."] * (len(from_parts) - common)), *to_parts[common:])


def _normalize_path(path: Path) -> Path:
    anchor = path.anchor
    parts = path.parts[1:] if anchor else path.parts
    segments: list[str] = []
    for part in parts:
        if part == "..":
            if segments:
                segments.pop()
        elif part != ".":
            segments.append(part)
    return Path(anchor, *segments) if anchor else Path(*segments)


def _starts_with(path: Path, base: Path) -> bool:
    base_parts = base.parts
    return path.parts[: len(base_parts)] == base_parts


def _is_self_referential(entry: Path, link_path: Path) -> bool:
    if not stat.S_ISLNK(os.lstat(entry).st_mode):
        return False
    resolved = _normalize_path(entry.parent / os.readlink(entry))
    return resolved == link_path and os.path.lexists(link_path)


def _check_link_collision(link_path: Path, keg_path: Path) -> None:
    try:
        mode = os.lstat(link_path).st_mode
    except FileNotFoundError:
        return

    if stat.S_ISLNK(mode):
        resolved = _normalize_path(link_path.parent / os.readlink(link_path))
        if _starts_with(resolved, keg_path):
            return

    raise LinkCollisionError(link_path)


def _remove_empty_parents(start: Path, stop_at: Path) -> None:
    current = start.parent
    while current != stop_at and _starts_with(current, stop_at):
        try:
            current.rmdir()
        except OSError:
            break
        if current.parent == current:
            break
        current = current.parent
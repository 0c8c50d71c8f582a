"""Small filesystem helpers shared by the cellar modules."""

from __future__ import annotations

import os
import stat
from pathlib import Path


def make_writable(path: str | os.PathLike[str]) -> None:
    """Ensure the owner may write ``path``; a missing file is left alone."""
    try:
        mode = os.stat(path).st_mode
    except FileNotFoundError:
        return
    if not mode & stat.S_IWUSR:
        os.chmod(path, stat.S_IMODE(mode) | stat.S_IWUSR)


def walk_files(directory: str | os.PathLike[str]) -> list[Path]:
    """Return every regular file below ``directory``, not following symlinks."""
    return list(_walk(Path(directory), include_symlinks=False))


def walk_entries(directory: str | os.PathLike[str]) -> list[Path]:
    """Return every regular file and symlink below ``directory``.

    Symlinked directories are reported as entries, never descended into.
    """
    return list(_walk(Path(directory), include_symlinks=True))


def normalize_absolute_path(path: str | os.PathLike[str]) -> Path | None:
    """Resolve ``.`` and ``..`` lexically.

    Returns ``None`` when a ``..`` would climb above the start of the path
    or the result would be empty.
    """
    pure = Path(path)
    anchor = pure.anchor
    parts = pure.parts[1:] if anchor else pure.parts
    segments: list[str] = []
    for part in parts:
        if part == ".":
            continue
        if part == "..":
            if not segments:
                return None
            segments.pop()
        else:
            segments.append(part)

    if not anchor and not segments:
        return None
    return Path(anchor, *segments) if anchor else Path(*segments)


def _walk(directory: Path, *, include_symlinks: bool):
    try:
        with os.scandir(directory) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)
    except NotADirectoryError:
        return
    for entry in entries:
        path = directory / entry.name
        if entry.is_dir(follow_symlinks=False):
            yield from _walk(path, include_symlinks=include_symlinks)
        elif entry.is_file(follow_symlinks=False) or (
            include_symlinks and entry.is_symlink()
        ):
            yield path
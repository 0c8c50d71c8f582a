"""Pouring extracted bottle contents into the Cellar."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from .errors import InvalidPathComponentError, MissingParentDirectoryError
from .fsutil import make_writable
from .link import relative_from_to

_TEMP_SUFFIX = ".kegcellar-tmp"


def materialize(
    source: str | os.PathLike[str],
    keg_path: str | os.PathLike[str],
    opt_dir: str | os.PathLike[str],
    name: str,
) -> None:
    """Copy ``source`` into ``keg_path`` and point ``opt_dir/name`` at it.

    The keg is assembled in a sibling temporary directory and renamed into
    place, so a re-pour replaces an existing keg in one step.
    """
    source = Path(source)
    keg_path = Path(keg_path)
    opt_dir = Path(opt_dir)

    keg_parent = keg_path.parent
    if keg_parent == keg_path:
        raise MissingParentDirectoryError(keg_path)
    keg_parent.mkdir(parents=True, exist_ok=True)

    version = keg_path.name
    if not version:
        raise InvalidPathComponentError(keg_path)
    temp_keg = keg_parent / f".{version}{_TEMP_SUFFIX}"

    # A previous run may have crashed half-way through copying.
    if temp_keg.exists():
        shutil.rmtree(temp_keg)

    copy_dir_recursive(source, temp_keg)

    if keg_path.exists():
        shutil.rmtree(keg_path)
    os.rename(temp_keg, keg_path)

    opt_dir.mkdir(parents=True, exist_ok=True)
    atomic_symlink_replace(relative_from_to(opt_dir, keg_path), opt_dir / name)


def atomic_symlink_replace(
    target: str | os.PathLike[str], link_path: str | os.PathLike[str]
) -> None:
    """Point ``link_path`` at ``target`` without a window where it is missing.

    The link is created under a temporary name and renamed over the old one.
    """
    link_path = Path(link_path)
    link_dir = link_path.parent
    if link_dir == link_path:
        raise MissingParentDirectoryError(link_path)
    name = link_path.name
    if not name:
        raise InvalidPathComponentError(link_path)
    temp_link = link_dir / f".{name}{_TEMP_SUFFIX}"

    if os.path.lexists(temp_link):
        os.remove(temp_link)

    os.symlink(target, temp_link)
    os.replace(temp_link, link_path)


def copy_dir_recursive(
    src: str | os.PathLike[str], dst: str | os.PathLike[str]
) -> None:
    """Copy a directory tree, recreating symlinks instead of following them.

    Symlinks with absolute targets are refused with ``OSError``. Read-only
    files already present at the destination are made writable first.
    """
    src = Path(src)
    dst = Path(dst)
    dst.mkdir(parents=True, exist_ok=True)
    with os.scandir(src) as iterator:
        entries = list(iterator)
    for entry in entries:
        src_path = src / entry.name
        dst_path = dst / entry.name
        if entry.is_dir(follow_symlinks=False):
            copy_dir_recursive(src_path, dst_path)
        elif entry.is_symlink():
            target = os.readlink(src_path)
            if os.path.isabs(target):
                raise OSError(f"absolute symlink in bottle: {src_path} -> {target}")
            if os.path.lexists(dst_path):
                os.remove(dst_path)
            os.symlink(target, dst_path)
        else:
            make_writable(dst_path)
            shutil.copy(src_path, dst_path)
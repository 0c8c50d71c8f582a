"""Discovery of installed kegs from the Cellar and ``opt`` symlinks."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from .fsutil import normalize_absolute_path
from .receipt import RECEIPT_FILE_NAME


@dataclass(frozen=True)
class InstalledKeg:
    """A formula found on disk through its ``opt`` symlink and receipt.

    ``pkg_version`` is the keg directory name, including any revision
    suffix such as ``3.4.1_1``.
    """

    name: str
    pkg_version: str
    installed_on_request: bool


def find_installed_keg(
    name: str,
    cellar: str | os.PathLike[str],
    opt_dir: str | os.PathLike[str],
) -> InstalledKeg | None:
    """Return the active keg of ``name``, or ``None`` if it is not installed.

    The ``opt/<name>`` symlink decides the active version. It must resolve to
    ``<cellar>/<name>/<version>`` and that directory must hold a receipt.
    Raises ``OSError`` when the link or receipt cannot be read and
    ``ValueError`` (including ``json.JSONDecodeError``) for a bad receipt.
    """
    cellar = Path(cellar)
    opt_link = Path(opt_dir) / name

    try:
        target = os.readlink(opt_link)
    except FileNotFoundError:
        return None

    resolved = _normalize_opt_target(opt_link, Path(target))
    if resolved is None:
        return None

    pkg_version = resolved.name
    if not pkg_version:
        return None

    keg_path = cellar / name / pkg_version
    if resolved != keg_path:
        return None

    try:
        content = (keg_path / RECEIPT_FILE_NAME).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None

    return InstalledKeg(
        name=name,
        pkg_version=pkg_version,
        installed_on_request=_installed_on_request(json.loads(content)),
    )


def discover_installed_kegs(
    cellar: str | os.PathLike[str],
    opt_dir: str | os.PathLike[str],
) -> list[InstalledKeg]:
    """Return every installed keg under ``cellar``, sorted by name.

    Formula directories without a valid ``opt`` link or receipt are skipped.
    A missing Cellar yields an empty list.
    """
    cellar = Path(cellar)
    if not cellar.is_dir():
        return []

    with os.scandir(cellar) as iterator:
        names = [entry.name for entry in iterator if entry.is_dir(follow_symlinks=False)]

    kegs = (find_installed_keg(name, cellar, opt_dir) for name in names)
    return sorted((keg for keg in kegs if keg is not None), key=lambda keg: keg.name)


def _normalize_opt_target(opt_link: Path, target: Path) -> Path | None:
    joined = target if target.is_absolute() else opt_link.parent / target
    return normalize_absolute_path(joined)


def _installed_on_request(metadata: object) -> bool:
    if not isinstance(metadata, dict):
        raise ValueError("install receipt must be a JSON object")
    value = metadata.get("installed_on_request", False)
    if not isinstance(value, bool):
        raise ValueError("installed_on_request must be a boolean")
    return value
"""Rewriting ``@@HOMEBREW_*@@`` placeholders inside a poured keg."""

from __future__ import annotations

import enum
import logging
import os
import subprocess
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from .errors import CommandFailedError
from .fsutil import make_writable, walk_files

logger = logging.getLogger(__name__)

PREFIX_PLACEHOLDER = "@@HOMEBREW_PREFIX@@"
CELLAR_PLACEHOLDER = "@@HOMEBREW_CELLAR@@"
REPOSITORY_PLACEHOLDER = "@@HOMEBREW_REPOSITORY@@"

_MARKER = b"@@HOMEBREW_"

MH_MAGIC_64 = bytes([0xCF, 0xFA, 0xED, 0xFE])
FAT_MAGIC = bytes([0xCA, 0xFE, 0xBA, 0xBE])

Replacements = Sequence[tuple[str, str]]


class RelocationScope(enum.Enum):
    """Which relocation steps to perform."""

    TEXT_ONLY = "text_only"
    """Replace text placeholders only; leave Mach-O binaries untouched."""
    FULL = "full"
    """Replace text placeholders and patch Mach-O load commands."""


@dataclass(frozen=True)
class RelocationManifest:
    """Paths, relative to a keg root, of files that need relocation."""

    paths: tuple[Path, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", tuple(Path(p) for p in self.paths))

    @classmethod
    def derive(cls, root: str | os.PathLike[str]) -> RelocationManifest:
        """List the regular files under ``root`` that contain a placeholder.

        Symlinks are not followed and never listed.
        """
        root = Path(root)
        return cls(
            tuple(
                path.relative_to(root)
                for path in walk_files(root)
                if has_placeholder(path.read_bytes())
            )
        )

    def __iter__(self) -> Iterator[Path]:
        return iter(self.paths)

    def __len__(self) -> int:
        return len(self.paths)


@dataclass
class MachOLoadCommands:
    """Load commands of a Mach-O file that relocation cares about."""

    id: str | None = None
    dylibs: list[str] = field(default_factory=list)
    rpaths: list[str] = field(default_factory=list)


def has_placeholder(data: bytes) -> bool:
    """Return whether ``data`` contains any ``@@HOMEBREW_`` marker."""
    return _MARKER in data


def is_macho(data: bytes) -> bool:
    """Return whether ``data`` starts with a 64-bit Mach-O or fat magic."""
    magic = bytes(data[:4])
    return magic in (MH_MAGIC_64, FAT_MAGIC)


def replace_placeholders(text: str, replacements: Replacements) -> str | None:
    """Apply ``replacements`` in order; return the new text or ``None`` if unchanged."""
    result = text
    changed = False
    for placeholder, actual in replacements:
        if placeholder in result:
            result = result.replace(placeholder, actual)
            changed = True
    return result if changed else None


def parse_load_commands(output: str) -> MachOLoadCommands:
    """Extract ``LC_ID_DYLIB``, dylib and ``LC_RPATH`` entries from ``otool -l`` output."""
    commands = MachOLoadCommands()
    lines = iter(output.splitlines())
    for line in lines:
        trimmed = line.strip()
        if not trimmed.startswith("cmd "):
            continue
        cmd = trimmed[len("cmd "):].strip()
        if cmd in ("LC_ID_DYLIB", "LC_LOAD_DYLIB", "LC_REEXPORT_DYLIB"):
            name = _skip_cmdsize_and_extract(lines, "name ")
            if name is not None:
                if cmd == "LC_ID_DYLIB":
                    commands.id = name
                else:
                    commands.dylibs.append(name)
        elif cmd == "LC_RPATH":
            path = _skip_cmdsize_and_extract(lines, "path ")
            if path is not None:
                commands.rpaths.append(path)
    return commands


def _skip_cmdsize_and_extract(lines: Iterator[str], prefix: str) -> str | None:
    next(lines, None)  # cmdsize
    value_line = next(lines, None)
    if value_line is None:
        return None
    stripped = value_line.strip()
    if not stripped.startswith(prefix):
        return None
    value = stripped[len(prefix):].split(" (offset", 1)[0].strip()
    return value or None


def relocate_text_file(
    path: str | os.PathLike[str], data: bytes, replacements: Replacements
) -> None:
    """Replace placeholders in ``data`` and write the result to ``path`` if it changed.

    Read-only files are made writable first.
    """
    content = bytes(data)
    changed = False
    for placeholder, actual in replacements:
        needle = placeholder.encode()
        if needle in content:
            content = content.replace(needle, actual.encode())
            changed = True
    if changed:
        make_writable(path)
        Path(path).write_bytes(content)


def relocate_keg(
    keg_path: str | os.PathLike[str],
    prefix: str | os.PathLike[str],
    scope: RelocationScope,
) -> None:
    """Rewrite placeholders in every file under ``keg_path``."""
    manifest = RelocationManifest.derive(keg_path)
    relocate_keg_with_manifest(keg_path, prefix, scope, manifest)


def relocate_keg_with_manifest(
    keg_path: str | os.PathLike[str],
    prefix: str | os.PathLike[str],
    scope: RelocationScope,
    manifest: RelocationManifest,
) -> None:
    """Rewrite placeholders in the files ``manifest`` lists, relative to ``keg_path``.

    Mach-O files are patched with ``install_name_tool`` only when ``scope`` is
    ``RelocationScope.FULL``; other files get byte replacement.
    """
    keg_path = Path(keg_path)
    prefix_str = str(Path(prefix))
    cellar_str = str(Path(prefix) / "Cellar")
    replacements = (
        (CELLAR_PLACEHOLDER, cellar_str),
        (PREFIX_PLACEHOLDER, prefix_str),
        (REPOSITORY_PLACEHOLDER, prefix_str),
    )

    def relocate_one(relative: Path) -> None:
        file = keg_path / relative
        data = file.read_bytes()
        if not has_placeholder(data):
            return
        if is_macho(data):
            if scope is RelocationScope.FULL:
                _relocate_macho(file, replacements)
        else:
            relocate_text_file(file, data, replacements)

    paths = list(manifest)
    if not paths:
        return
    with ThreadPoolExecutor() as pool:
        futures = [pool.submit(relocate_one, relative) for relative in paths]
    for future in futures:
        future.result()


def _relocate_macho(path: Path, replacements: Replacements) -> None:
    path_s = str(path)
    make_writable(path)

    commands = parse_load_commands(_run_cmd("otool", ["-l", path_s]))
    args: list[str] = []

    if commands.id is not None:
        new_id = replace_placeholders(commands.id, replacements)
        if new_id is not None:
            args += ["-id", new_id]

    for old_path in commands.dylibs:
        new_path = replace_placeholders(old_path, replacements)
        if new_path is not None:
            args += ["-change", old_path, new_path]

    for old_rpath in commands.rpaths:
        new_rpath = replace_placeholders(old_rpath, replacements)
        if new_rpath is not None:
            args += ["-rpath", old_rpath, new_rpath]

    if args:
        args.append(path_s)
        _run_cmd("install_name_tool", args)

    try:
        _run_cmd("codesign", ["--force", "--sign", "-", path_s])
    except CommandFailedError as error:
        logger.warning("ad-hoc codesign failed for %s: %s", path_s, error)


def _run_cmd(program: str, args: Iterable[str]) -> str:
    argv = [program, *args]
    logger.debug("running %s", " ".join(argv))
    try:
        completed = subprocess.run(argv, capture_output=True, check=False)
    except OSError as error:
        raise CommandFailedError(f"{program} failed to start: {error}") from error

    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="replace")
        raise CommandFailedError(f"{program} failed: {stderr}")

    try:
        return completed.stdout.decode("utf-8")
    except UnicodeDecodeError as error:
        raise CommandFailedError(f"{program} produced invalid UTF-8: {error}") from error
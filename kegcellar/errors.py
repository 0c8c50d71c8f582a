"""Exception types raised by cellar operations.

Filesystem failures surface as the built-in ``OSError`` family and JSON
problems as ``json.JSONDecodeError``. The classes here cover the conditions
that have no natural built-in counterpart.
"""

from __future__ import annotations

import os
from pathlib import Path


class CellarError(Exception):
    """Base class for cellar-specific failures."""


class LinkCollisionError(CellarError):
    """A link target already exists and belongs to a different keg."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        super().__init__(f"link collision at {self.path}")


class MissingParentDirectoryError(CellarError):
    """A required parent directory could not be determined."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        super().__init__(f"missing parent directory for {self.path}")


class InvalidPathComponentError(CellarError):
    """A path has no usable file name component."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        super().__init__(f"invalid path component in {self.path}")


class CommandFailedError(CellarError):
    """An external command could not be started or exited unsuccessfully."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"command failed: {message}")
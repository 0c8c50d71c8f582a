"""Homebrew-compatible install receipts written into each keg."""

from __future__ import annotations

import enum
import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path

RECEIPT_FILE_NAME = "INSTALL_RECEIPT.json"

_TOOL_NAME = "kegcellar"
_TOOL_VERSION = "0.1.0"


class InstallReason(enum.Enum):
    """Why a formula was installed."""

    ON_REQUEST = "on_request"
    AS_DEPENDENCY = "as_dependency"


@dataclass
class ReceiptSourceVersions:
    """Version information within the formula source."""

    stable: str
    head: str | None = None
    version_scheme: int = 0


@dataclass
class ReceiptSource:
    """Formula source information in the install receipt."""

    path: str
    tap: str
    spec: str
    versions: ReceiptSourceVersions


@dataclass
class ReceiptDependency:
    """A runtime dependency entry in the install receipt."""

    full_name: str
    version: str
    revision: int
    pkg_version: str
    declared_directly: bool


@dataclass
class InstallReceipt:
    """The contents of ``INSTALL_RECEIPT.json``.

    Field order matches the keys written to disk.
    """

    homebrew_version: str
    used_options: list[str]
    unused_options: list[str]
    built_as_bottle: bool
    poured_from_bottle: bool
    installed_as_dependency: bool
    installed_on_request: bool
    changed_files: list[str]
    time: float | None
    source_modified_time: float | None
    compiler: str
    aliases: list[str]
    runtime_dependencies: list[ReceiptDependency]
    source: ReceiptSource
    arch: str = field(default_factory=platform.machine)

    @classmethod
    def for_bottle(
        cls,
        install_reason: InstallReason,
        time: float | None,
        runtime_dependencies: list[ReceiptDependency],
        source: ReceiptSource,
    ) -> InstallReceipt:
        """Build a receipt for a formula poured from a bottle."""
        return cls._create(
            install_reason, time, runtime_dependencies, source, from_bottle=True
        )

    @classmethod
    def for_source(
        cls,
        install_reason: InstallReason,
        time: float | None,
        runtime_dependencies: list[ReceiptDependency],
        source: ReceiptSource,
    ) -> InstallReceipt:
        """Build a receipt for a formula built from source."""
        return cls._create(
            install_reason, time, runtime_dependencies, source, from_bottle=False
        )

    @classmethod
    def _create(
        cls,
        install_reason: InstallReason,
        time: float | None,
        runtime_dependencies: list[ReceiptDependency],
        source: ReceiptSource,
        *,
        from_bottle: bool,
    ) -> InstallReceipt:
        return cls(
            homebrew_version=f"{_TOOL_NAME} {_TOOL_VERSION}",
            used_options=[],
            unused_options=[],
            built_as_bottle=from_bottle,
            poured_from_bottle=from_bottle,
            installed_as_dependency=install_reason is InstallReason.AS_DEPENDENCY,
            installed_on_request=install_reason is InstallReason.ON_REQUEST,
            changed_files=[],
            time=None if time is None else float(time),
            source_modified_time=None,
            compiler="clang",
            aliases=[],
            runtime_dependencies=list(runtime_dependencies),
            source=source,
            arch=platform.machine(),
        )

    def to_dict(self) -> dict:
        """Return the receipt as JSON-ready nested dictionaries."""
        return asdict(self)


def write_receipt(keg_path: str | os.PathLike[str], receipt: InstallReceipt) -> None:
    """Write ``receipt`` as ``INSTALL_RECEIPT.json`` inside ``keg_path``.

    Raises ``OSError`` when the file cannot be written.
    """
    path = Path(keg_path) / RECEIPT_FILE_NAME
    path.write_text(json.dumps(receipt.to_dict(), indent=2), encoding="utf-8")
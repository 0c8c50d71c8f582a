"""SQLite-backed record of installed formulas."""

from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path

_SCHEMA = """
CREATE TABLE IF NOT EXISTS installs (
    name TEXT PRIMARY KEY,
    version TEXT NOT NULL,
    revision INTEGER NOT NULL DEFAULT 0,
    installed_on_request INTEGER NOT NULL DEFAULT 0,
    installed_at TEXT NOT NULL
)
"""

_COLUMNS = "name, version, revision, installed_on_request, installed_at"


@dataclass(frozen=True)
class InstallRecord:
    """One installed formula."""

    name: str
    version: str
    revision: int
    installed_on_request: bool
    installed_at: str


def _row_to_record(row: tuple) -> InstallRecord:
    name, version, revision, on_request, installed_at = row
    return InstallRecord(
        name=name,
        version=version,
        revision=int(revision),
        installed_on_request=bool(on_request),
        installed_at=installed_at,
    )


class StateDb:
    """Install records kept in a SQLite database."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    @classmethod
    def open(cls, path: str | os.PathLike[str]) -> StateDb:
        """Open or create the database at ``path``, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(path)
        try:
            with connection:
                connection.execute(_SCHEMA)
        except sqlite3.Error:
            connection.close()
            raise
        return cls(connection)

    def insert(self, record: InstallRecord) -> None:
        """Insert ``record``, replacing any record with the same name."""
        with self._conn:
            self._conn.execute(
                f"INSERT OR REPLACE INTO installs ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (
                    record.name,
                    record.version,
                    record.revision,
                    int(record.installed_on_request),
                    record.installed_at,
                ),
            )

    def get(self, name: str) -> InstallRecord | None:
        """Return the record for ``name``, or ``None`` if there is none."""
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM installs WHERE name = ?", (name,)
        ).fetchone()
        return None if row is None else _row_to_record(row)

    def list(self) -> list[InstallRecord]:
        """Return all records ordered by name."""
        rows = self._conn.execute(f"SELECT {_COLUMNS} FROM installs ORDER BY name")
        return [_row_to_record(row) for row in rows]

    def remove(self, name: str) -> None:
        """Delete the record for ``name``; a missing name is not an error."""
        with self._conn:
            self._conn.execute("DELETE FROM installs WHERE name = ?", (name,))

    def close(self) -> None:
        """Close the underlying connection."""
        self._conn.close()

    def __enter__(self) -> StateDb:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return "StateDb(...)"
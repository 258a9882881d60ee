"""Connection to an existing issue store, with sqlite-vec loaded.

The issue store is populated by the issue-tracker cache, not by issuelens.
It is opened read-write (the chunk table lives beside the ``issue`` table)
but never created: a missing file is an error, not an empty store.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from urllib.parse import quote

import sqlite_vec


class IssueStoreError(RuntimeError):
    """Raised when the issue store is missing or cannot be read."""


def store_uri(db_path: Path) -> str:
    """SQLite URI that opens *db_path* read-write without creating it."""
    return f"file:{quote(db_path.as_posix())}?mode=rw"


class Database:
    """Existing issue store. Use connect() or as a context manager."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open the store, load sqlite-vec and switch to WAL.

        Raises:
            IssueStoreError: If the file does not exist or is not a database.
        """
        try:
            conn = sqlite3.connect(store_uri(self.db_path), uri=True)
        except sqlite3.OperationalError as exc:
            raise IssueStoreError(f"Cannot open issue store {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        try:
            conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.DatabaseError as exc:
            conn.close()
            raise IssueStoreError(f"Cannot open issue store {self.db_path}: {exc}") from exc
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

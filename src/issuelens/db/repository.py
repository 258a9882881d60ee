"""Repository for the issue store and the chunk-embedding table.

Single interface for: reading issue records (externally owned ``issue``
table) and reading/writing chunk embeddings (``issue_chunk_embeddings``).
Similarity search is not done here; see issuelens.rag.retriever.
"""

from __future__ import annotations

import logging
import re
import sqlite3

from issuelens.db.connection import IssueStoreError
from issuelens.db.models import ChunkEmbedding, IssueRecord, normalize_key
from issuelens.db.schema import CHUNK_TABLE, initialize
from issuelens.db.vectors import pack_vector, stored_dimensions, unpack_vector

logger = logging.getLogger(__name__)

_KEY_SPLIT_RE = re.compile(r"[,;\s]+")

_ISSUE_COLUMNS = (
    "KEY, SUMMARY, DESCRIPTION, PARENTKEY, CHILDRENKEYS, RELATESKEYS, "
    "ISSUETYPE, PROJECTNAME, PROJECTCODE, STATUS, HISTORY, ATTACHMENTS"
)


class Repository:
    """Data access layer for issue records and chunk embeddings.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use. Every write commits immediately, so a
    cancelled or failed index run leaves only complete rows behind.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection (see issuelens.db.connection.Database).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Issues (read-only)
    # ------------------------------------------------------------------

    def load_all_issues(self) -> dict[str, IssueRecord]:
        """Return every issue keyed by its canonical key.

        Rows with a blank key are skipped. NULL columns read as "".

        Raises:
            IssueStoreError: If the ``issue`` table cannot be queried.
        """
        try:
            rows = self._conn.execute(f"SELECT {_ISSUE_COLUMNS} FROM issue").fetchall()
        except sqlite3.Error as exc:
            raise IssueStoreError(f"Cannot read issue store: {exc}") from exc

        issues: dict[str, IssueRecord] = {}
        for row in rows:
            record = _row_to_issue(row)
            if record.key:
                issues[record.key] = record
        logger.debug("Loaded %d issues", len(issues))
        return issues

    # ------------------------------------------------------------------
    # Chunk embeddings
    # ------------------------------------------------------------------

    def ensure_chunk_table(self) -> None:
        """Create the chunk-embedding table if it does not exist (idempotent)."""
        initialize(self._conn)

    def upsert_chunk(self, chunk: ChunkEmbedding) -> None:
        """Insert or replace the row keyed by (issue_key, chunk_index)."""
        self._conn.execute(
            f"""
            INSERT INTO {CHUNK_TABLE} (issue_key, chunk_index, text, vector, meta)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(issue_key, chunk_index) DO UPDATE SET
                text = excluded.text,
                vector = excluded.vector,
                meta = excluded.meta
            """,
            (
                chunk.issue_key,
                chunk.chunk_index,
                chunk.text,
                pack_vector(chunk.vector),
                chunk.meta,
            ),
        )
        self._conn.commit()

    def load_all_chunks(self) -> list[ChunkEmbedding]:
        """Full scan of the chunk table in insertion (rowid) order."""
        rows = self._conn.execute(
            f"SELECT issue_key, chunk_index, text, vector, meta FROM {CHUNK_TABLE} ORDER BY rowid"
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def load_chunks_for_issue(self, key: str, limit: int | None = None) -> list[ChunkEmbedding]:
        """Return the chunks of one issue ordered by chunk_index.

        Args:
            key: Issue key (matched case-insensitively).
            limit: Maximum number of chunks (None = all).
        """
        sql = (
            f"SELECT issue_key, chunk_index, text, vector, meta FROM {CHUNK_TABLE} "
            "WHERE issue_key = ? ORDER BY chunk_index"
        )
        params: tuple = (normalize_key(key),)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        return [_row_to_chunk(r) for r in self._conn.execute(sql, params).fetchall()]

    def delete_chunks_from(self, key: str, start_index: int) -> int:
        """Delete chunks of *key* with ``chunk_index >= start_index``.

        Returns the number of rows removed.
        """
        cur = self._conn.execute(
            f"DELETE FROM {CHUNK_TABLE} WHERE issue_key = ? AND chunk_index >= ?",
            (normalize_key(key), start_index),
        )
        self._conn.commit()
        return cur.rowcount

    def count_chunks(self) -> int:
        """Return the total number of stored chunks."""
        return self._conn.execute(f"SELECT COUNT(*) FROM {CHUNK_TABLE}").fetchone()[0]

    def count_indexed_issues(self) -> int:
        """Return the number of distinct issues with at least one chunk."""
        return self._conn.execute(
            f"SELECT COUNT(DISTINCT issue_key) FROM {CHUNK_TABLE}"
        ).fetchone()[0]

    def chunk_dimensions(self) -> dict[int, int]:
        """Return ``{dimensions: row_count}`` across stored vectors."""
        return stored_dimensions(self._conn)


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def split_keys(raw: str | None) -> list[str]:
    """Split a delimited key list; trims, drops blanks, dedupes in order."""
    seen: set[str] = set()
    keys: list[str] = []
    for part in _KEY_SPLIT_RE.split(raw or ""):
        key = normalize_key(part)
        if key and key not in seen:
            seen.add(key)
            keys.append(key)
    return keys


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _row_to_issue(row: sqlite3.Row) -> IssueRecord:
    return IssueRecord(
        key=normalize_key(_text(row["KEY"])),
        summary=_text(row["SUMMARY"]),
        description=_text(row["DESCRIPTION"]),
        parent_key=normalize_key(_text(row["PARENTKEY"])),
        children=split_keys(_text(row["CHILDRENKEYS"])),
        related=split_keys(_text(row["RELATESKEYS"])),
        issue_type=_text(row["ISSUETYPE"]),
        project_name=_text(row["PROJECTNAME"]),
        project_code=_text(row["PROJECTCODE"]),
        status=_text(row["STATUS"]),
        history=_text(row["HISTORY"]),
        attachments=_text(row["ATTACHMENTS"]),
    )


def _row_to_chunk(row: sqlite3.Row) -> ChunkEmbedding:
    return ChunkEmbedding(
        issue_key=row["issue_key"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        vector=unpack_vector(row["vector"]),
        meta=row["meta"] or "{}",
    )

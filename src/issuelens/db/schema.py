"""Chunk-embedding table DDL and initialization.

The ``issue`` table belongs to the external sync process and is only read
here. ``issue_chunk_embeddings`` is owned by issuelens and created on demand.
"""

from __future__ import annotations

import sqlite3

CHUNK_TABLE = "issue_chunk_embeddings"

_CREATE_CHUNK_TABLE = f"""
CREATE TABLE IF NOT EXISTS {CHUNK_TABLE} (
    issue_key   TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    text        TEXT NOT NULL,
    vector      BLOB NOT NULL,
    meta        TEXT NOT NULL,
    PRIMARY KEY (issue_key, chunk_index)
)
"""


def initialize(conn: sqlite3.Connection) -> None:
    """Create the chunk-embedding table if missing (idempotent)."""
    conn.execute(_CREATE_CHUNK_TABLE)
    conn.commit()

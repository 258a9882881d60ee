"""Vector BLOB packing and sqlite-vec dimension inspection.

Stored format: little-endian float32 BLOB, no header. The BLOB length is
``4 * dimensions``; sqlite-vec reads the same layout.
"""

from __future__ import annotations

import sqlite3
import struct

from issuelens.db.schema import CHUNK_TABLE

_FLOAT_SIZE = 4


def pack_vector(vector: list[float]) -> bytes:
    """Pack *vector* into a little-endian float32 BLOB."""
    return struct.pack(f"<{len(vector)}f", *(float(x) for x in vector))


def unpack_vector(blob: bytes | None) -> list[float]:
    """Unpack a float32 BLOB. Trailing partial bytes are ignored."""
    if not blob:
        return []
    count = len(blob) // _FLOAT_SIZE
    return list(struct.unpack_from(f"<{count}f", blob))


def stored_dimensions(conn: sqlite3.Connection) -> dict[int, int]:
    """Return ``{dimensions: row_count}`` for every stored vector length.

    Uses sqlite-vec's ``vec_length()``, which reads float32 BLOBs directly.
    More than one key means the index mixes embedding models.
    Empty or misaligned BLOBs are skipped (vec_length rejects them).
    """
    rows = conn.execute(
        f"""
        SELECT vec_length(vector) AS dims, COUNT(*) AS n
        FROM {CHUNK_TABLE}
        WHERE length(vector) > 0 AND length(vector) % {_FLOAT_SIZE} = 0
        GROUP BY dims
        ORDER BY dims
        """
    ).fetchall()
    return {r["dims"]: r["n"] for r in rows}

"""issuelens database layer."""

from issuelens.db.connection import Database, IssueStoreError
from issuelens.db.models import ChunkEmbedding, IssueRecord, normalize_key
from issuelens.db.repository import Repository
from issuelens.db.schema import CHUNK_TABLE, initialize

__all__ = [
    "Database",
    "ChunkEmbedding",
    "IssueRecord",
    "IssueStoreError",
    "Repository",
    "CHUNK_TABLE",
    "initialize",
    "normalize_key",
]

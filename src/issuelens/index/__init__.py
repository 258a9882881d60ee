"""issuelens index pipeline — graph, context rendering, chunking, embedding."""

from issuelens.index.builder import IndexBuilder, IndexConfig, IndexProgress, IndexResult
from issuelens.index.chunker import chunk_text
from issuelens.index.context import build_context
from issuelens.index.graph import RelationshipGraph

__all__ = [
    "IndexBuilder",
    "IndexConfig",
    "IndexProgress",
    "IndexResult",
    "RelationshipGraph",
    "build_context",
    "chunk_text",
]

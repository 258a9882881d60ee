"""Dense retriever: cosine similarity over every stored chunk.

score(c) = cosine(query_vec, c.vector) + (seed_boost if c.issue_key == seed_key)
cosine(a, b) = dot(a, b) / (|a| * |b| + 1e-9)

Similarity search is a linear scan in application memory. Callers depend
only on Retriever.search(), so the scan can be replaced by an indexed
vector store without touching them.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Protocol

from issuelens.db.models import ChunkEmbedding, normalize_key
from issuelens.db.repository import Repository

logger = logging.getLogger(__name__)

_EPSILON = 1e-9
DEFAULT_SEED_BOOST = 0.05


class EmptyIndexError(RuntimeError):
    """Raised when a query runs against an index with no stored chunks."""


class QueryEmbedder(Protocol):
    def embed(self, text: str) -> list[float]: ...


@dataclass
class RetrieverConfig:
    """Configuration for the retriever.

    Attributes:
        top_k: Maximum number of chunks returned.
        seed_boost: Additive bonus for chunks of the seed issue.
    """

    top_k: int = 12
    seed_boost: float = DEFAULT_SEED_BOOST


@dataclass
class ScoredChunk:
    """A retrieved chunk with its cosine similarity and final (boosted) score."""

    chunk: ChunkEmbedding
    similarity: float
    score: float


def cosine(a: list[float], b: list[float]) -> float:
    """Cosine similarity with an epsilon-guarded denominator.

    Empty vectors, all-zero vectors and vectors of different lengths score
    exactly 0.0.
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = na = nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na == 0.0 or nb == 0.0:
        return 0.0
    return dot / (math.sqrt(na) * math.sqrt(nb) + _EPSILON)


def rank(
    query_vector: list[float],
    chunks: list[ChunkEmbedding],
    top_k: int,
    seed_key: str | None = None,
    seed_boost: float = DEFAULT_SEED_BOOST,
) -> list[ScoredChunk]:
    """Score *chunks* against *query_vector*; return the best *top_k*.

    The sort is stable: equal scores keep the order of *chunks*.
    """
    seed = normalize_key(seed_key) if seed_key else ""
    scored: list[ScoredChunk] = []
    mismatched = 0
    for chunk in chunks:
        if chunk.vector and len(chunk.vector) != len(query_vector):
            mismatched += 1
        similarity = cosine(query_vector, chunk.vector)
        boost = seed_boost if seed and normalize_key(chunk.issue_key) == seed else 0.0
        scored.append(ScoredChunk(chunk=chunk, similarity=similarity, score=similarity + boost))

    if mismatched:
        logger.warning(
            "%d stored vectors differ in length from the query vector (%d); "
            "they scored 0.0. Re-index to refresh them.",
            mismatched,
            len(query_vector),
        )

    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[: max(0, top_k)]


class Retriever:
    """Embed a query and rank every persisted chunk against it.

    Args:
        repo:     Open Repository (read-only use).
        embedder: Anything with ``embed(text) -> list[float]``.
        config:   top_k and seed boost.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: QueryEmbedder,
        config: RetrieverConfig | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._config = config or RetrieverConfig()

    def search(
        self,
        query: str,
        top_k: int | None = None,
        seed_key: str | None = None,
    ) -> list[ScoredChunk]:
        """Return the *top_k* best chunks for *query*, best first.

        Raises:
            EmptyIndexError: If no chunks have been indexed yet. Checked
                before the query is embedded.
            issuelens.rag.llm_client.ModelServerError: On embedding failure.
        """
        self._repo.ensure_chunk_table()
        chunks = self._repo.load_all_chunks()
        if not chunks:
            raise EmptyIndexError(
                "No embeddings found. Run 'issuelens index' first to build the index."
            )

        query_vector = self._embedder.embed(query)
        k = self._config.top_k if top_k is None else top_k
        results = rank(query_vector, chunks, k, seed_key, self._config.seed_boost)
        logger.debug("Retrieved %d of %d chunks for query", len(results), len(chunks))
        return results

"""Index builder — context rendering, chunking, embedding, persistence.

Per issue, strictly sequential:
  1. Prepare: render context (issue + graph neighbourhood).
  2. Split:   fixed-window chunks.
  3. For each chunk: embed, then upsert keyed by (issue_key, chunk_index).

Cancellation is checked before every issue and every chunk. Stopping early
leaves already-upserted rows in place; re-running is idempotent.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from issuelens.db.models import ChunkEmbedding, IssueRecord, normalize_key
from issuelens.db.repository import Repository
from issuelens.index.chunker import DEFAULT_MAX_CHARS, chunk_text
from issuelens.index.context import build_context
from issuelens.index.graph import RelationshipGraph

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    def embed(self, text: str) -> list[float]: ...


@dataclass
class IndexConfig:
    """Index build parameters."""

    chunk_size: int = DEFAULT_MAX_CHARS
    hop: int = 2


@dataclass(frozen=True)
class IndexProgress:
    """Progress after one chunk has been persisted (ordinals are 1-based)."""

    issue_key: str
    issue_ordinal: int
    issue_total: int
    chunk_ordinal: int
    chunk_total: int

    def describe(self) -> str:
        return (
            f"[{self.issue_ordinal}/{self.issue_total}] Embedding {self.issue_key} "
            f"(chunk {self.chunk_ordinal}/{self.chunk_total})"
        )


@dataclass
class IndexResult:
    """Outcome of a build run."""

    issues_total: int = 0
    issues_indexed: int = 0
    chunks_written: int = 0
    cancelled: bool = False


class IndexBuilder:
    """Build the chunk-embedding index for a set of issues.

    Args:
        repo:     Open Repository (sole writer of the chunk table).
        graph:    Relationship graph built from the full issue map.
        embedder: Anything with ``embed(text) -> list[float]``.
        config:   Chunk size and neighbourhood hop limit.
    """

    def __init__(
        self,
        repo: Repository,
        graph: RelationshipGraph,
        embedder: Embedder,
        config: IndexConfig | None = None,
    ) -> None:
        self._repo = repo
        self._graph = graph
        self._embedder = embedder
        self._config = config or IndexConfig()

    def build(
        self,
        issues: Mapping[str, IssueRecord],
        on_progress: Callable[[IndexProgress], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> IndexResult:
        """Re-embed every chunk of every issue in *issues*.

        Issues are processed in sorted key order. Any embedding or store
        error aborts the run.
        """
        return self._run(issues, sorted(issues), on_progress, cancel)

    def build_keys(
        self,
        issues: Mapping[str, IssueRecord],
        keys: Iterable[str],
        on_progress: Callable[[IndexProgress], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> IndexResult:
        """Re-embed only *keys*; *issues* still supplies neighbour summaries.

        Raises:
            KeyError: If a key is not in *issues*.
        """
        selected = sorted({normalize_key(k) for k in keys})
        missing = [k for k in selected if k not in issues]
        if missing:
            raise KeyError(", ".join(missing))
        return self._run(issues, selected, on_progress, cancel)

    # ------------------------------------------------------------------
    # Per-issue state machine
    # ------------------------------------------------------------------

    def _run(
        self,
        issues: Mapping[str, IssueRecord],
        keys: list[str],
        on_progress: Callable[[IndexProgress], None] | None,
        cancel: threading.Event | None,
    ) -> IndexResult:
        self._repo.ensure_chunk_table()
        result = IndexResult(issues_total=len(keys))
        logger.info(
            "Indexing %d issues (chunk_size=%d, hop=%d)",
            len(keys), self._config.chunk_size, self._config.hop,
        )

        for ordinal, key in enumerate(keys, start=1):
            if _cancelled(cancel):
                result.cancelled = True
                break

            issue = issues[key]
            context = build_context(issue, issues, self._graph, self._config.hop)
            chunks = chunk_text(context, self._config.chunk_size)
            meta = self._meta_for(issue)

            written = 0
            for index, text in enumerate(chunks):
                if _cancelled(cancel):
                    result.cancelled = True
                    break
                vector = self._embedder.embed(text)
                self._repo.upsert_chunk(
                    ChunkEmbedding(
                        issue_key=issue.key,
                        chunk_index=index,
                        text=text,
                        vector=vector,
                        meta=meta,
                    )
                )
                written += 1
                result.chunks_written += 1
                logger.debug("Upserted %s chunk %d", issue.key, index)
                if on_progress is not None:
                    on_progress(
                        IndexProgress(
                            issue_key=issue.key,
                            issue_ordinal=ordinal,
                            issue_total=len(keys),
                            chunk_ordinal=index + 1,
                            chunk_total=len(chunks),
                        )
                    )

            if result.cancelled:
                break

            # Drop trailing rows left over from a longer previous rendering.
            removed = self._repo.delete_chunks_from(issue.key, len(chunks))
            if removed:
                logger.debug("Removed %d stale chunks for %s", removed, issue.key)
            result.issues_indexed += 1

        if result.cancelled:
            logger.info(
                "Indexing cancelled after %d/%d issues", result.issues_indexed, len(keys)
            )
        else:
            logger.info(
                "Indexed %d issues, %d chunks", result.issues_indexed, result.chunks_written
            )
        return result

    def _meta_for(self, issue: IssueRecord) -> str:
        return json.dumps(
            {
                "summary": issue.summary,
                "issuetype": issue.issue_type,
                "status": issue.status,
                "project": issue.project_code,
                "path": self._graph.format_path(issue.key),
            },
            ensure_ascii=False,
        )


def _cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()

"""Context assembly and grounded generation.

Pipeline for ``ask``:
  1. Retrieve the top-K chunks for the question (optional seed boost).
  2. Apply the token budget: keep chunks in rank order until the budget is
     reached (the best chunk is always kept).
  3. Build the prompt and generate, blocking or streamed.

Summary / test cases / user guide are canned instructions bound to the
first chunks of a single issue, in chunk order.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from issuelens.db.models import ChunkEmbedding, normalize_key
from issuelens.db.repository import Repository
from issuelens.generate import templates
from issuelens.rag.llm_client import ModelServerClient, count_tokens
from issuelens.rag.retriever import EmptyIndexError, Retriever, RetrieverConfig

logger = logging.getLogger(__name__)


class IssueNotFoundError(KeyError):
    """Raised when an issue key is not present in the issue store."""

    def __str__(self) -> str:
        return f"Issue not found: {self.args[0]}"


@dataclass
class AssemblerConfig:
    top_k: int = 12
    seed_boost: float = 0.05
    token_budget: int = 6_000          # max tokens of retrieved context for ask
    keyed_chunks: int = 8              # chunks used by summary/tests/guide


def apply_token_budget(
    chunks: list[ChunkEmbedding],
    model: str,
    budget: int,
) -> tuple[list[ChunkEmbedding], int]:
    """Select chunks in order while they fit in *budget* tokens.

    The first chunk is always kept, even if it alone exceeds the budget.
    Returns (selected, total_tokens).
    """
    selected: list[ChunkEmbedding] = []
    total = 0
    for chunk in chunks:
        tokens = count_tokens(model, chunk.text)
        if selected and total + tokens > budget:
            break
        selected.append(chunk)
        total += tokens
    return selected, total


class Assistant:
    """Question answering and canned documents over the chunk index.

    Args:
        repo:   Open Repository.
        client: Model server client (embedding + generation).
        config: Retrieval and budget settings.
    """

    def __init__(
        self,
        repo: Repository,
        client: ModelServerClient,
        config: AssemblerConfig | None = None,
    ) -> None:
        self._repo = repo
        self._client = client
        self._config = config or AssemblerConfig()
        self._retriever = Retriever(
            repo,
            client,
            RetrieverConfig(top_k=self._config.top_k, seed_boost=self._config.seed_boost),
        )

    # ------------------------------------------------------------------
    # Free-form questions
    # ------------------------------------------------------------------

    def prepare_question(
        self,
        question: str,
        top_k: int | None = None,
        seed_key: str | None = None,
        system_style: str | None = None,
    ) -> tuple[str, list[ChunkEmbedding]]:
        """Retrieve, budget and build the prompt. Returns (prompt, chunks used).

        Raises:
            EmptyIndexError: If nothing has been indexed yet.
        """
        scored = self._retriever.search(question, top_k=top_k, seed_key=seed_key)
        ranked = [s.chunk for s in scored]
        model = self._client.config.generation_model
        chunks, tokens = apply_token_budget(ranked, model, self._config.token_budget)
        if len(chunks) < len(ranked):
            logger.info(
                "Token budget %d reached: using %d of %d chunks (%d tokens)",
                self._config.token_budget, len(chunks), len(ranked), tokens,
            )
        return templates.build_prompt(question, chunks, system_style), chunks

    def ask(
        self,
        question: str,
        top_k: int | None = None,
        seed_key: str | None = None,
        system_style: str | None = None,
    ) -> str:
        """Answer *question* from the index (blocking)."""
        prompt, _ = self.prepare_question(question, top_k, seed_key, system_style)
        return self._client.generate(prompt)

    def stream(
        self,
        question: str,
        top_k: int | None = None,
        seed_key: str | None = None,
        system_style: str | None = None,
        cancel: threading.Event | None = None,
    ) -> Iterator[str]:
        """Answer *question* as a lazy sequence of text deltas.

        Retrieval runs immediately; generation starts on first iteration.
        """
        prompt, _ = self.prepare_question(question, top_k, seed_key, system_style)
        return self._client.generate_stream(prompt, cancel=cancel)

    def ask_stream(
        self,
        question: str,
        on_delta: Callable[[str], None],
        top_k: int | None = None,
        seed_key: str | None = None,
        system_style: str | None = None,
        cancel: threading.Event | None = None,
    ) -> str:
        """Stream the answer to *on_delta*; returns the concatenated text."""
        parts: list[str] = []
        for delta in self.stream(question, top_k, seed_key, system_style, cancel):
            on_delta(delta)
            parts.append(delta)
        return "".join(parts)

    # ------------------------------------------------------------------
    # Canned documents for one issue
    # ------------------------------------------------------------------

    def summary(self, key: str) -> str:
        return self._generate_for_key(key, templates.summary_instruction)

    def test_cases(self, key: str) -> str:
        return self._generate_for_key(key, templates.test_cases_instruction)

    def user_guide(self, key: str) -> str:
        return self._generate_for_key(key, templates.user_guide_instruction)

    def prepare_for_key(
        self, key: str, instruction_for: Callable[[str], str]
    ) -> tuple[str, list[ChunkEmbedding]]:
        """Build the prompt for a canned instruction. Returns (prompt, chunks).

        Raises:
            IssueNotFoundError: If *key* is not in the issue store.
            EmptyIndexError: If *key* has no indexed chunks.
        """
        canonical = normalize_key(key)
        issues = self._repo.load_all_issues()
        if canonical not in issues:
            raise IssueNotFoundError(key)

        self._repo.ensure_chunk_table()
        chunks = self._repo.load_chunks_for_issue(canonical, limit=self._config.keyed_chunks)
        if not chunks:
            raise EmptyIndexError(
                f"Issue {canonical} has no embeddings. Run 'issuelens index' first."
            )
        return templates.build_prompt(instruction_for(canonical), chunks), chunks

    def _generate_for_key(self, key: str, instruction_for: Callable[[str], str]) -> str:
        prompt, _ = self.prepare_for_key(key, instruction_for)
        return self._client.generate(prompt)

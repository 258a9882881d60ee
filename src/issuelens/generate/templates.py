"""Prompt templates for grounded generation.

Prompt structure:
  You are an expert requirements engineer and technical writer.
  Follow the SYSTEM rules below, use only the provided CONTEXT.

  SYSTEM:
  {system_style}            ← optional caller style, placed before the rules
  {system rules}

  CONTEXT:
  ### Doc 1 — DEV-12 (chunk 0)
  PATH: DEV-1 > DEV-12
  SUMMARY: ...
  {chunk text}

  USER TASK:
  {instruction}

  Answer:
"""

from __future__ import annotations

from collections.abc import Iterable

from issuelens.db.models import ChunkEmbedding

_PREAMBLE = (
    "You are an expert requirements engineer and technical writer.\n"
    "Follow the SYSTEM rules below, use only the provided CONTEXT."
)

SYSTEM_RULES = (
    "- If the answer is not in context, say you don't have enough info.\n"
    "- Always cite issue keys inline like [DEV-123].\n"
    "- Prefer structured outputs: bullet points, tables, numbered steps.\n"
    "- Keep references to parent/child/related issues when summarizing.\n"
    "- For test cases: use Gherkin-style scenarios when appropriate.\n"
    "- For user guides: produce step-by-step instructions and prerequisites."
)


def system_block(system_style: str | None = None) -> str:
    """Return the SYSTEM rules, prefixed by *system_style* when given."""
    if system_style and system_style.strip():
        return f"{system_style}\n{SYSTEM_RULES}"
    return SYSTEM_RULES


def format_chunks(chunks: Iterable[ChunkEmbedding]) -> str:
    """Render chunks as numbered, labelled context blocks."""
    blocks: list[str] = []
    for i, chunk in enumerate(chunks, start=1):
        meta = chunk.meta_dict
        lines = [f"### Doc {i} — {chunk.issue_key} (chunk {chunk.chunk_index})"]
        if "path" in meta:
            lines.append(f"PATH: {meta['path']}")
        if "summary" in meta:
            lines.append(f"SUMMARY: {meta['summary']}")
        lines.append(chunk.text)
        blocks.append("\n".join(lines) + "\n")
    return "\n".join(blocks)


def build_prompt(
    instruction: str,
    chunks: Iterable[ChunkEmbedding],
    system_style: str | None = None,
) -> str:
    """Build the full generation prompt for *instruction* over *chunks*."""
    return (
        f"{_PREAMBLE}\n\n"
        f"SYSTEM:\n{system_block(system_style)}\n\n"
        f"CONTEXT:\n{format_chunks(chunks)}\n"
        f"USER TASK:\n{instruction}\n\n"
        "Answer:"
    )


# ------------------------------------------------------------------
# Canned instructions
# ------------------------------------------------------------------


def summary_instruction(key: str) -> str:
    return (
        f"Summarize requirement [{key}] with purpose, scope, key behaviors, constraints, "
        "dependencies, and acceptance criteria. Include referenced children and related issues."
    )


def test_cases_instruction(key: str) -> str:
    return (
        f"Generate comprehensive test cases for [{key}] using Gherkin "
        "(Feature/Scenario/Given-When-Then) and a coverage checklist. "
        "Include edge cases and reference children/related keys."
    )


def user_guide_instruction(key: str) -> str:
    return (
        f"Write a user guide for [{key}] including Overview, Prerequisites, "
        "Step-by-step usage, Notes, and Troubleshooting. "
        "Reference related and child issues where relevant."
    )

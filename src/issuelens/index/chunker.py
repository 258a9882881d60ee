"""Fixed-window character chunker for rendered issue context."""

from __future__ import annotations

DEFAULT_MAX_CHARS = 1500


def chunk_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> list[str]:
    """Split *text* into consecutive windows of at most *max_chars* characters.

    No overlap, no stripping: ``"".join(chunk_text(t, n)) == t`` for every
    input, and the chunk count is ``ceil(len(text) / max_chars)``. Only the
    last chunk may be shorter. Empty text yields no chunks.

    Raises:
        ValueError: If *max_chars* is less than 1.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be >= 1")
    return [text[pos : pos + max_chars] for pos in range(0, len(text), max_chars)]

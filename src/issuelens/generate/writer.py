"""Atomic writers for fine-tuning artefacts (training JSONL, Modelfile).

Both outputs are written to a temp file next to the target and renamed over
it only once complete; the target is either the old file or the full new one.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any


@contextmanager
def atomic_open(path: Path) -> Iterator[IO[str]]:
    """Yield a UTF-8 text handle whose content replaces *path* on success.

    Parent directories are created. On any exception the temp file is
    removed and *path* is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            yield handle
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_jsonl(path: Path, records: Iterable[Mapping[str, Any]]) -> int:
    """Stream *records* to *path* as JSON Lines. Returns the number written.

    Records are serialized one at a time; the full export is never held in
    memory.
    """
    count = 0
    with atomic_open(path) as handle:
        for record in records:
            handle.write(json.dumps(record, ensure_ascii=False))
            handle.write("\n")
            count += 1
    return count


def write_text(path: Path, text: str) -> None:
    """Write *text* to *path* atomically."""
    with atomic_open(path) as handle:
        handle.write(text)

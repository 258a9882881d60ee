"""In-memory relationship graph over parent / children / related links."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator, Mapping

from issuelens.db.models import IssueRecord, normalize_key

# Bound on parent-chain walks; the store may contain cyclic parent links.
MAX_PATH_DEPTH = 50

PATH_SEPARATOR = " > "


class RelationshipGraph:
    """Adjacency view of the loaded issue map.

    The graph does not copy the map; it reads parent, children and related
    keys from the records on demand. Links to keys missing from the map are
    still traversed (and yielded) but cannot be expanded further.
    """

    def __init__(self, issues: Mapping[str, IssueRecord]) -> None:
        self._issues = issues

    def neighborhood(self, key: str, hop: int) -> Iterator[str]:
        """Yield keys within *hop* links of *key*, breadth-first.

        *key* itself comes first (distance 0). Each key is yielded once.
        Nodes at distance *hop* are yielded but not expanded. Every call
        returns a fresh generator.
        """
        start = normalize_key(key)
        if not start:
            return
        seen = {start}
        queue: deque[tuple[str, int]] = deque([(start, 0)])

        while queue:
            current, dist = queue.popleft()
            yield current
            if dist >= hop:
                continue
            record = self._issues.get(current)
            if record is None:
                continue
            for nxt in (record.parent_key, *record.children, *record.related):
                nxt = normalize_key(nxt)
                if nxt and nxt not in seen:
                    seen.add(nxt)
                    queue.append((nxt, dist + 1))

    def path_to_root(self, key: str) -> list[str]:
        """Return the parent chain of *key*, root first, *key* last.

        The walk stops after MAX_PATH_DEPTH keys, so a cyclic chain yields a
        truncated path instead of looping.
        """
        parts: list[str] = []
        current = normalize_key(key)
        while current and len(parts) < MAX_PATH_DEPTH:
            parts.append(current)
            record = self._issues.get(current)
            if record is None or not record.parent_key:
                break
            current = normalize_key(record.parent_key)
        parts.reverse()
        return parts

    def format_path(self, key: str) -> str:
        """``path_to_root`` joined with " > "."""
        return PATH_SEPARATOR.join(self.path_to_root(key))

"""Domain models for the issuelens database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field


@dataclass
class IssueRecord:
    key: str
    summary: str = ""
    description: str = ""
    parent_key: str = ""
    children: list[str] = field(default_factory=list)
    related: list[str] = field(default_factory=list)
    issue_type: str = ""
    project_name: str = ""
    project_code: str = ""
    status: str = ""
    history: str = ""
    attachments: str = ""


@dataclass
class ChunkEmbedding:
    issue_key: str
    chunk_index: int
    text: str
    vector: list[float] = field(default_factory=list)
    meta: str = field(default_factory=lambda: "{}")

    @property
    def meta_dict(self) -> dict:
        return json.loads(self.meta) if self.meta.strip() else {}


def normalize_key(key: str | None) -> str:
    """Canonical form of an issue key: stripped and upper-cased.

    Issue keys are compared case-insensitively everywhere; storing them in
    one canonical form lets plain dicts and sets do the matching.
    """
    return (key or "").strip().upper()

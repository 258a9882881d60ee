"""Render one issue plus its graph neighbourhood as an embeddable text block.

Field order is fixed:

    KEY: DEV-12
    PROJECT: DEV – Development
    TYPE: Requirement
    STATUS: Open
    PATH: DEV-1 > DEV-5 > DEV-12
    SUMMARY: ...
    DESCRIPTION:
    ...
    HISTORY:
    ...
    ATTACHMENTS (names/ids):
    ...
    NEIGHBORHOOD:
    - DEV-5: parent summary
    - DEV-13: child summary

Blank optional fields are omitted. KEY and SUMMARY are always present.
"""

from __future__ import annotations

from collections.abc import Mapping
from itertools import islice

from issuelens.db.models import IssueRecord
from issuelens.index.graph import RelationshipGraph

MAX_NEIGHBORS = 50


def build_context(
    issue: IssueRecord,
    issues: Mapping[str, IssueRecord],
    graph: RelationshipGraph,
    hop: int,
) -> str:
    """Return the enriched context text for *issue*.

    Up to MAX_NEIGHBORS keys from ``graph.neighborhood(issue.key, hop)``
    (excluding the issue itself) are considered; keys absent from *issues*
    are left out of the listing.
    """
    lines: list[str] = [f"KEY: {issue.key}"]
    if issue.project_code.strip():
        lines.append(f"PROJECT: {issue.project_code} – {issue.project_name}")
    if issue.issue_type.strip():
        lines.append(f"TYPE: {issue.issue_type}")
    if issue.status.strip():
        lines.append(f"STATUS: {issue.status}")

    path = graph.format_path(issue.key)
    if path:
        lines.append(f"PATH: {path}")

    lines.append(f"SUMMARY: {issue.summary}")

    if issue.description.strip():
        lines += ["DESCRIPTION:", issue.description]
    if issue.history.strip():
        lines += ["HISTORY:", issue.history]
    if issue.attachments.strip():
        lines += ["ATTACHMENTS (names/ids):", issue.attachments]

    neighbors = list(
        islice(
            (k for k in graph.neighborhood(issue.key, hop) if k != issue.key),
            MAX_NEIGHBORS,
        )
    )
    if neighbors:
        lines.append("NEIGHBORHOOD:")
        for key in neighbors:
            record = issues.get(key)
            if record is not None:
                lines.append(f"- {key}: {record.summary}")

    return "\n".join(lines)

"""Fine-tuning artefacts: JSONL training pairs and a Modelfile.

Each issue yields two pairs, in sorted key order:

  {"prompt": "What is DEV-1?",
   "response": "Summary: ...\nDescription: ...\nChildren: DEV-2, DEV-3\nRelated: DEV-9"}
  {"prompt": "Summarize issue DEV-1", "response": "DEV-1: ..."}
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from issuelens.db.models import IssueRecord

DEFAULT_TRAINING_FILE = "jira_training.jsonl"
DEFAULT_TEMPERATURE = 0.7


def training_pairs(issues: Mapping[str, IssueRecord]) -> Iterator[dict[str, str]]:
    for key in sorted(issues):
        issue = issues[key]
        yield {
            "prompt": f"What is {issue.key}?",
            "response": (
                f"Summary: {issue.summary}\n"
                f"Description: {issue.description}\n"
                f"Children: {', '.join(issue.children)}\n"
                f"Related: {', '.join(issue.related)}"
            ),
        }
        yield {
            "prompt": f"Summarize issue {issue.key}",
            "response": f"{issue.key}: {issue.summary}",
        }


def modelfile_text(
    base_model: str,
    training_file: str = DEFAULT_TRAINING_FILE,
    temperature: float = DEFAULT_TEMPERATURE,
) -> str:
    """Return a Modelfile that fine-tunes *base_model* on *training_file*."""
    return (
        f"FROM {base_model}\n"
        f"PARAMETER temperature {temperature}\n"
        f"FINETUNE {training_file}\n"
    )

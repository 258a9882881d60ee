"""issuelens export-jsonl / write-modelfile — fine-tuning artefacts.

Usage:
  issuelens export-jsonl --db issues.db --out jira_training.jsonl
  issuelens write-modelfile --out Modelfile [--training jira_training.jsonl]
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from issuelens.cli.common import DEFAULT_DB, console, load_issues, load_settings, open_db
from issuelens.cli.errors import EXIT_FAILURE, err_output_path_unsafe
from issuelens.db.repository import Repository
from issuelens.generate.training import DEFAULT_TRAINING_FILE, modelfile_text, training_pairs
from issuelens.generate.writer import write_jsonl, write_text

DEFAULT_MODELFILE = "Modelfile"

YesOption = Annotated[
    bool,
    typer.Option("--yes", "-y", help="Overwrite an existing file without asking."),
]


def export_jsonl_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the issue store (SQLite)."),
    ] = DEFAULT_DB,
    out: Annotated[
        str,
        typer.Option("--out", "-o", help="Output JSONL path."),
    ] = DEFAULT_TRAINING_FILE,
    yes: YesOption = False,
) -> None:
    """Export prompt/response training pairs for every issue as JSON Lines."""
    output_path = _prepare_output(out, yes)

    conn = open_db(db)
    try:
        issues = load_issues(Repository(conn), db)
    finally:
        conn.close()

    written = write_jsonl(output_path, training_pairs(issues))
    console.print(
        f"  [green]✓[/] Wrote {written} training pairs "
        f"({len(issues)} issues) to [bold]{output_path}[/]"
    )


def write_modelfile_cmd(
    out: Annotated[
        str,
        typer.Option("--out", "-o", help="Output Modelfile path."),
    ] = DEFAULT_MODELFILE,
    training: Annotated[
        str,
        typer.Option("--training", help="Training file referenced by FINETUNE."),
    ] = DEFAULT_TRAINING_FILE,
    yes: YesOption = False,
) -> None:
    """Write a Modelfile that fine-tunes the generation model on the export."""
    cfg = load_settings()
    output_path = _prepare_output(out, yes)
    write_text(output_path, modelfile_text(cfg.generation.model, training))
    console.print(f"  [green]✓[/] Modelfile written to [bold]{output_path}[/]")


def _prepare_output(out: str, yes: bool) -> Path:
    """Resolve *out* for writing; exits on an unsafe path or a declined overwrite.

    Absolute paths are taken as given. Relative paths must stay inside the
    working directory.
    """
    path = Path(out)
    if path.is_absolute():
        output_path = path.resolve()
    else:
        base = Path.cwd().resolve()
        output_path = (base / path).resolve()
        if not output_path.is_relative_to(base):
            console.print(err_output_path_unsafe(out))
            raise typer.Exit(EXIT_FAILURE)

    if output_path.exists() and not yes:
        if not typer.confirm(f"  File exists: {output_path.name}\n  Overwrite?", default=False):
            console.print("  [dim]Cancelled.[/]")
            raise typer.Exit(0)
    return output_path

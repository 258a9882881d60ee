"""issuelens finetune — build a local model from a Modelfile via ``ollama create``.

Usage:
  issuelens finetune --name issues-tuned --modelfile Modelfile
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Annotated

import typer

from issuelens.cli.common import console
from issuelens.cli.errors import (
    EXIT_FAILURE,
    EXIT_MISSING_FLAG,
    err_missing_flag,
    err_ollama_not_found,
)
from issuelens.cli.export import DEFAULT_MODELFILE


def finetune_cmd(
    name: Annotated[
        str | None,
        typer.Option("--name", help="Name of the model to create (required)."),
    ] = None,
    modelfile: Annotated[
        Path,
        typer.Option("--modelfile", help="Modelfile to build from."),
    ] = Path(DEFAULT_MODELFILE),
) -> None:
    """Run `ollama create NAME -f MODELFILE` and relay its output."""
    if not name or not name.strip():
        console.print(err_missing_flag("--name", "issuelens finetune --name issues-tuned"))
        raise typer.Exit(EXIT_MISSING_FLAG)

    if not modelfile.exists():
        console.print(
            f"[red]Error:[/] Modelfile not found: '{modelfile}'\n"
            "  Run:  issuelens write-modelfile --out Modelfile"
        )
        raise typer.Exit(EXIT_FAILURE)

    ollama = shutil.which("ollama")
    if not ollama:
        console.print(err_ollama_not_found())
        raise typer.Exit(EXIT_FAILURE)

    proc = subprocess.run(
        [ollama, "create", name.strip(), "-f", str(modelfile)],
        capture_output=True,
        text=True,
        shell=False,
    )
    if proc.stdout:
        typer.echo(proc.stdout, nl=False)
    if proc.stderr:
        typer.echo(proc.stderr, nl=False, err=True)
    if proc.returncode != 0:
        raise typer.Exit(proc.returncode)
    console.print(f"  [green]✓[/] Model [bold]{name.strip()}[/] created.")

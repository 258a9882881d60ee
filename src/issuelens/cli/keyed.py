"""issuelens summary / tests / guide — canned documents for one issue.

Usage:
  issuelens summary --db issues.db --key DEV-12
  issuelens tests   --db issues.db --key DEV-12
  issuelens guide   --db issues.db --key DEV-12

Each command grounds the answer in the first chunks of the issue (up to
retrieval.keyed_chunks, default 8). Unknown key → exit 3; issue not yet
indexed → exit 4.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from issuelens.cli.common import (
    DEFAULT_DB,
    assembler_config,
    console,
    load_settings,
    make_client,
    open_db,
)
from issuelens.cli.errors import (
    EXIT_EMPTY_INDEX,
    EXIT_FAILURE,
    EXIT_MISSING_FLAG,
    EXIT_NOT_FOUND,
    err_empty_index,
    err_issue_not_found,
    err_missing_flag,
    err_model_server,
)
from issuelens.db.repository import IssueStoreError, Repository
from issuelens.rag.assembler import Assistant, IssueNotFoundError
from issuelens.rag.llm_client import ModelServerError
from issuelens.rag.retriever import EmptyIndexError

KeyOption = Annotated[
    str | None,
    typer.Option("--key", "-k", help="Issue key, e.g. DEV-12 (required)."),
]
DbOption = Annotated[
    Path,
    typer.Option("--db", help="Path to the issue store (SQLite)."),
]
ServerOption = Annotated[
    str | None,
    typer.Option("--server", help="Model server base URL."),
]


def summary_cmd(key: KeyOption = None, db: DbOption = DEFAULT_DB, server: ServerOption = None) -> None:
    """Summarize an issue: purpose, scope, behaviours, acceptance criteria."""
    _run("summary", key, db, server, lambda a, k: a.summary(k))


def tests_cmd(key: KeyOption = None, db: DbOption = DEFAULT_DB, server: ServerOption = None) -> None:
    """Generate Gherkin test cases and a coverage checklist for an issue."""
    _run("tests", key, db, server, lambda a, k: a.test_cases(k))


def guide_cmd(key: KeyOption = None, db: DbOption = DEFAULT_DB, server: ServerOption = None) -> None:
    """Write a step-by-step user guide for an issue."""
    _run("guide", key, db, server, lambda a, k: a.user_guide(k))


def _run(
    command: str,
    key: str | None,
    db: Path,
    server: str | None,
    operation: Callable[[Assistant, str], str],
) -> None:
    if not key or not key.strip():
        console.print(err_missing_flag("--key", f"issuelens {command} --key DEV-12"))
        raise typer.Exit(EXIT_MISSING_FLAG)

    cfg = load_settings(server)
    conn = open_db(db)
    try:
        with make_client(cfg) as client:
            assistant = Assistant(Repository(conn), client, assembler_config(cfg))
            try:
                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    transient=True,
                    console=console,
                ) as prog:
                    prog.add_task(f"Generating {command} for {key.strip().upper()}…", total=None)
                    text = operation(assistant, key)
            except IssueNotFoundError:
                console.print(err_issue_not_found(key))
                raise typer.Exit(EXIT_NOT_FOUND)
            except EmptyIndexError:
                console.print(err_empty_index(str(db)))
                raise typer.Exit(EXIT_EMPTY_INDEX)
            except IssueStoreError as exc:
                console.print(f"[red]Error:[/] {exc}")
                raise typer.Exit(EXIT_FAILURE)
            except ModelServerError as exc:
                console.print(err_model_server(cfg.server.url, str(exc)))
                raise typer.Exit(EXIT_FAILURE)
    finally:
        conn.close()

    typer.echo(text)

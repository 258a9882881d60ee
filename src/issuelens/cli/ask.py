"""issuelens ask — answer a free-form question from the chunk index.

Usage:
  issuelens ask --db issues.db --q "How does SSO login work?"
  issuelens ask --q "Acceptance criteria?" --seed DEV-12 --topk 8 --sys "Answer in German." --no-stream

Flags:
  --q TEXT          Question (required)
  --topk N          Chunks retrieved [default: 12]
  --seed KEY        Boost chunks of this issue
  --sys TEXT        Extra system style, placed before the standard rules
  --stream          Print the answer as it is generated (default); Ctrl-C stops
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from issuelens.cli.common import (
    DEFAULT_DB,
    assembler_config,
    cancel_on_sigint,
    console,
    load_settings,
    make_client,
    open_db,
)
from issuelens.cli.errors import (
    EXIT_EMPTY_INDEX,
    EXIT_FAILURE,
    EXIT_MISSING_FLAG,
    err_empty_index,
    err_missing_flag,
    err_model_server,
)
from issuelens.db.repository import Repository
from issuelens.rag.assembler import Assistant
from issuelens.rag.llm_client import ModelServerError
from issuelens.rag.retriever import EmptyIndexError


def ask_cmd(
    q: Annotated[
        str | None,
        typer.Option("--q", help="Question to answer (required)."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the issue store (SQLite)."),
    ] = DEFAULT_DB,
    topk: Annotated[
        int | None,
        typer.Option("--topk", min=1, help="Number of chunks to retrieve [default: 12]."),
    ] = None,
    seed: Annotated[
        str | None,
        typer.Option("--seed", help="Issue key whose chunks get a small score boost."),
    ] = None,
    sys_style: Annotated[
        str | None,
        typer.Option("--sys", help="Extra system instruction placed before the standard rules."),
    ] = None,
    stream: Annotated[
        bool,
        typer.Option("--stream/--no-stream", help="Print the answer as it is generated."),
    ] = True,
    server: Annotated[
        str | None,
        typer.Option("--server", help="Model server base URL."),
    ] = None,
) -> None:
    """Answer a question grounded in the indexed issues."""
    if not q or not q.strip():
        console.print(err_missing_flag("--q", 'issuelens ask --q "How does login work?"'))
        raise typer.Exit(EXIT_MISSING_FLAG)

    cfg = load_settings(server)
    conn = open_db(db)
    try:
        with make_client(cfg) as client:
            assistant = Assistant(Repository(conn), client, assembler_config(cfg))
            try:
                if stream:
                    _stream_answer(assistant, q, topk, seed, sys_style)
                else:
                    _blocking_answer(assistant, q, topk, seed, sys_style)
            except EmptyIndexError:
                console.print(err_empty_index(str(db)))
                raise typer.Exit(EXIT_EMPTY_INDEX)
            except ModelServerError as exc:
                console.print(err_model_server(cfg.server.url, str(exc)))
                raise typer.Exit(EXIT_FAILURE)
    finally:
        conn.close()


def _blocking_answer(
    assistant: Assistant,
    question: str,
    topk: int | None,
    seed: str | None,
    sys_style: str | None,
) -> None:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task("Generating…", total=None)
        answer = assistant.ask(question, top_k=topk, seed_key=seed, system_style=sys_style)
    typer.echo(answer)


def _stream_answer(
    assistant: Assistant,
    question: str,
    topk: int | None,
    seed: str | None,
    sys_style: str | None,
) -> None:
    with cancel_on_sigint() as cancel:
        assistant.ask_stream(
            question,
            on_delta=lambda delta: typer.echo(delta, nl=False),
            top_k=topk,
            seed_key=seed,
            system_style=sys_style,
            cancel=cancel,
        )
        typer.echo()
        if cancel.is_set():
            console.print("  [dim]Stopped.[/]")

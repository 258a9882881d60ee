"""issuelens index — build the chunk-embedding index from the issue store.

Usage:
  issuelens index --db issues.db
  issuelens index --db issues.db --key DEV-12 --key DEV-13 --chunksize 1200 --hop 1

Ctrl-C stops after the chunk in flight. Rows already written are kept; a
re-run embeds every selected issue again and overwrites them in place
(upserts are idempotent).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from issuelens.cli.common import (
    DEFAULT_DB,
    cancel_on_sigint,
    console,
    load_issues,
    load_settings,
    make_client,
    open_db,
)
from issuelens.cli.errors import (
    EXIT_FAILURE,
    EXIT_NOT_FOUND,
    err_issue_not_found,
    err_model_server,
)
from issuelens.db.models import normalize_key
from issuelens.db.repository import Repository
from issuelens.index.builder import IndexBuilder, IndexConfig, IndexProgress, IndexResult
from issuelens.index.graph import RelationshipGraph
from issuelens.rag.llm_client import ModelServerError


def index_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the issue store (SQLite)."),
    ] = DEFAULT_DB,
    chunksize: Annotated[
        int | None,
        typer.Option("--chunksize", min=1, help="Max characters per chunk [default: 1500]."),
    ] = None,
    hop: Annotated[
        int | None,
        typer.Option("--hop", min=0, help="Neighbourhood depth in the context [default: 2]."),
    ] = None,
    key: Annotated[
        list[str] | None,
        typer.Option("--key", "-k", help="Only re-index this issue (repeatable)."),
    ] = None,
    server: Annotated[
        str | None,
        typer.Option("--server", help="Model server base URL."),
    ] = None,
) -> None:
    """Embed every issue (with its neighbourhood) into the chunk index."""
    cfg = load_settings(server)
    config = IndexConfig(
        chunk_size=chunksize if chunksize is not None else cfg.index.chunk_size,
        hop=hop if hop is not None else cfg.index.hop,
    )

    conn = open_db(db)
    try:
        repo = Repository(conn)
        issues = load_issues(repo, db)
        graph = RelationshipGraph(issues)

        with make_client(cfg) as client:
            builder = IndexBuilder(repo, graph, client, config)
            total = len({normalize_key(k) for k in key}) if key else len(issues)
            try:
                result = _run_with_progress(builder, issues, key, total)
            except KeyError as exc:
                console.print(err_issue_not_found(exc.args[0]))
                raise typer.Exit(EXIT_NOT_FOUND)
            except ModelServerError as exc:
                console.print(err_model_server(cfg.server.url, str(exc)))
                raise typer.Exit(EXIT_FAILURE)
    finally:
        conn.close()

    _report(result)


# ------------------------------------------------------------------
# Progress + cancellation
# ------------------------------------------------------------------


def _run_with_progress(
    builder: IndexBuilder,
    issues: dict,
    keys: list[str] | None,
    total: int,
) -> IndexResult:
    with cancel_on_sigint() as cancel, Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Indexing…", total=total)

        def on_progress(p: IndexProgress) -> None:
            prog.update(task, description=p.describe())
            if p.chunk_ordinal == p.chunk_total:
                prog.advance(task)

        if keys:
            return builder.build_keys(issues, keys, on_progress=on_progress, cancel=cancel)
        return builder.build(issues, on_progress=on_progress, cancel=cancel)


def _report(result: IndexResult) -> None:
    if result.cancelled:
        console.print(
            f"  [yellow]Cancelled[/] after {result.issues_indexed}/{result.issues_total} issues "
            f"({result.chunks_written} chunks written). Re-run to continue."
        )
        return
    console.print(
        f"  [green]✓[/] Indexed {result.issues_indexed} issues, "
        f"{result.chunks_written} chunks."
    )

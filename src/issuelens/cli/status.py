"""issuelens status — issue store, index and model server overview."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from issuelens.cli.common import DEFAULT_DB, console, load_issues, load_settings, open_db
from issuelens.cli.errors import warn_mixed_dimensions
from issuelens.config import IssueLensConfig
from issuelens.db.repository import Repository


def status_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the issue store (SQLite)."),
    ] = DEFAULT_DB,
    server: Annotated[
        str | None,
        typer.Option("--server", help="Model server base URL."),
    ] = None,
) -> None:
    """Show issue store and index statistics plus the configured models."""
    cfg = load_settings(server)
    _show_server_panel(cfg)

    if not db.exists():
        console.print(
            Panel(
                f"[yellow]No issue store found at '{db}'.[/]\n"
                "  Pass the cache database with:  --db PATH",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        repo = Repository(conn)
        issues = load_issues(repo, db)
        repo.ensure_chunk_table()
        _show_index_panel(db, len(issues), repo)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_server_panel(cfg: IssueLensConfig) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Server", cfg.server.url)
    table.add_row("Embedding", cfg.embedding.model)
    table.add_row("Generation", cfg.generation.model)
    table.add_row("Chunk size", str(cfg.index.chunk_size))
    table.add_row("Hop", str(cfg.index.hop))
    table.add_row("Top-K", str(cfg.retrieval.top_k))
    console.print(Panel(table, title="[bold]Model Server[/]", expand=False))


def _show_index_panel(db: Path, issue_count: int, repo: Repository) -> None:
    indexed = repo.count_indexed_issues()
    chunks = repo.count_chunks()
    dims = repo.chunk_dimensions()

    size_mb = db.stat().st_size / (1024 * 1024)
    lines = [
        f"Store:   {db} ({size_mb:.1f} MB)",
        f"Issues: [bold]{issue_count:,}[/]  |  "
        f"Indexed: [bold]{indexed:,}[/]  |  "
        f"Chunks: [bold]{chunks:,}[/]",
    ]
    if dims:
        lines.append("Vector dimensions: " + ", ".join(f"{d} ({n:,})" for d, n in dims.items()))
    else:
        lines.append("[dim]Nothing indexed yet.  Run:  issuelens index[/]")

    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
    if len(dims) > 1:
        console.print(warn_mixed_dimensions(sorted(dims)))

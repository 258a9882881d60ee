"""issuelens rich error messages and exit codes.

Every error shown to the user contains:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from issuelens.cli.errors import EXIT_NOT_FOUND, err_issue_not_found
    console.print(err_issue_not_found("DEV-9"))
    raise typer.Exit(EXIT_NOT_FOUND)
"""

from __future__ import annotations

EXIT_OK = 0
EXIT_FAILURE = 1          # unknown/missing command, or the operation failed
EXIT_MISSING_FLAG = 2
EXIT_NOT_FOUND = 3
EXIT_EMPTY_INDEX = 4


def err_no_db(db_path: str) -> str:
    """The issue store file does not exist."""
    return (
        f"[red]Error:[/] No issue store found at '{db_path}'.\n"
        "  Pass the cache database with:  --db PATH"
    )


def err_store_unreadable(db_path: str, detail: str) -> str:
    """The issue store exists but the ``issue`` table cannot be read."""
    return (
        f"[red]Error:[/] Cannot read issues from '{db_path}'.\n"
        f"  {detail}\n"
        "  Check that the file is an issue cache with an 'issue' table."
    )


def err_missing_flag(flag: str, example: str) -> str:
    """A required option was not given."""
    return (
        f"[red]Error:[/] Missing required option {flag}.\n"
        f"  Example:  {example}"
    )


def err_issue_not_found(key: str) -> str:
    """Issue key not present in the store."""
    return (
        f"[red]Error:[/] Issue '{key}' not found in the issue store.\n"
        "  Check the key; run  issuelens status  to see what is loaded."
    )


def err_empty_index(db_path: str) -> str:
    """Query against an index with no embeddings."""
    return (
        "[red]Error:[/] No embeddings found.\n"
        f"  Run:  issuelens index --db {db_path}  first."
    )


def err_model_server(url: str, detail: str) -> str:
    """Model server unreachable, returned an error, or an unexpected shape."""
    return (
        f"[red]Error:[/] Model server request failed ({url}).\n"
        f"  {detail}\n"
        "  Check that the server is running:  ollama serve\n"
        "  Or point to another server:  --server URL"
    )


def err_config(detail: str) -> str:
    """Invalid issuelens.yaml / global config."""
    return (
        f"[red]Error:[/] Invalid configuration: {detail}\n"
        "  Fix issuelens.yaml or ~/.issuelens/config.yaml."
    )


def err_output_path_unsafe(path: str) -> str:
    """--out path fails validation."""
    return (
        f"[red]Error:[/] Output path is not allowed: '{path}'\n"
        "  Use a path within the current working directory."
    )


def err_unknown_command(name: str) -> str:
    """The first argument does not name an issuelens command."""
    return (
        f"[red]Error:[/] No such command '{name}'.\n"
        "  Run:  issuelens --help  to list the available commands."
    )


def err_ollama_not_found() -> str:
    """The ollama binary is not on PATH."""
    return (
        "[red]Error:[/] 'ollama' not found on PATH.\n"
        "  Install: https://ollama.com/download"
    )


def warn_mixed_dimensions(dims: list[int]) -> str:
    """Stored vectors have more than one dimensionality."""
    listed = ", ".join(str(d) for d in dims)
    return (
        f"[yellow]⚠[/] Stored vectors have mixed dimensions ({listed}).\n"
        "  The embedding model changed between runs. Re-index:  issuelens index"
    )

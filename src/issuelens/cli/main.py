"""issuelens CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from typer.core import TyperGroup

from issuelens.cli.ask import ask_cmd
from issuelens.cli.common import console
from issuelens.cli.errors import EXIT_FAILURE, err_unknown_command
from issuelens.cli.export import export_jsonl_cmd, write_modelfile_cmd
from issuelens.cli.finetune import finetune_cmd
from issuelens.cli.index import index_cmd
from issuelens.cli.keyed import guide_cmd, summary_cmd, tests_cmd
from issuelens.cli.status import status_cmd


class _CommandGroup(TyperGroup):
    """Top-level group: an unknown command exits with 1, not the usage-error 2."""

    def resolve_command(self, ctx: typer.Context, args: list[str]):
        name = args[0] if args else ""
        if name and not name.startswith("-") and self.get_command(ctx, name) is None:
            console.print(err_unknown_command(name))
            raise typer.Exit(EXIT_FAILURE)
        return super().resolve_command(ctx, args)


def _installed_version() -> str:
    try:
        return importlib.metadata.version("issuelens")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"issuelens {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    pkg_logger = logging.getLogger("issuelens")
    pkg_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in pkg_logger.handlers):
        pkg_logger.addHandler(
            RichHandler(console=Console(stderr=True), show_path=False, markup=False)
        )


app = typer.Typer(
    name="issuelens",
    cls=_CommandGroup,
    help=(
        "issuelens — local RAG over a cached issue-tracker graph.\n\n"
        "  issuelens index   Embed issues and their neighbourhood into the chunk index.\n"
        "  issuelens ask     Answer a question grounded in the index."
    ),
    add_completion=False,
)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """issuelens — local RAG over a cached issue-tracker graph."""
    _configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(EXIT_FAILURE)


app.command("index")(index_cmd)
app.command("ask")(ask_cmd)
app.command("summary")(summary_cmd)
app.command("tests")(tests_cmd)
app.command("guide")(guide_cmd)
app.command("export-jsonl")(export_jsonl_cmd)
app.command("write-modelfile")(write_modelfile_cmd)
app.command("finetune")(finetune_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed issuelens version."""
    typer.echo(f"issuelens {_installed_version()}")


if __name__ == "__main__":
    app()

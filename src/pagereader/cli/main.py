"""pagereader CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from pagereader.cli.init import init_cmd
from pagereader.cli.read import index_cmd, read_cmd
from pagereader.cli.status import status_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("pagereader")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pagereader {_version()}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route log records through rich; DEBUG with --verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=False, show_path=False)],
        force=True,
    )
    # LiteLLM and its HTTP stack are noisy at DEBUG.
    for name in ("LiteLLM", "httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


app = typer.Typer(
    name="pagereader",
    help=(
        "pagereader — read web pages through a local vector index.\n\n"
        "  pagereader read URL              Lead paragraphs of the page.\n"
        "  pagereader read URL -q QUESTION  Excerpts relevant to QUESTION."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
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
        typer.Option("--verbose", "-v", help="Log pipeline progress at DEBUG level."),
    ] = False,
) -> None:
    """pagereader — read web pages through a local vector index."""
    configure_logging(verbose)


app.command("init")(init_cmd)
app.command("read")(read_cmd)
app.command("index")(index_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed pagereader version."""
    typer.echo(f"pagereader {_version()}")


if __name__ == "__main__":
    app()

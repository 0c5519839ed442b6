"""pagereader read / index — run the pipeline for one URL."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from pagereader.config import ConfigError, PageReaderConfig, load_config
from pagereader.cli.errors import render_error
from pagereader.errors import PageReaderError
from pagereader.ingest.fetcher import canonical_url
from pagereader.ingest.pipeline import IndexReport
from pagereader.reader import PageReader

console = Console()
err_console = Console(stderr=True)


def read_cmd(
    url: Annotated[str, typer.Argument(help="URL of the page to read.")],
    question: Annotated[
        str | None,
        typer.Option("--question", "-q", help="Return the excerpts relevant to this question."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the chunk store (default: store.path from config)."),
    ] = None,
) -> None:
    """Read a page: its lead paragraphs, or the excerpts answering --question."""
    cfg = _load_config_or_exit()
    try:
        text = asyncio.run(_read(cfg, url, question, db))
    except PageReaderError as exc:
        err_console.print(render_error(exc))
        raise typer.Exit(1) from exc

    if text:
        typer.echo(text)
    else:
        console.print("[dim]No matching content.[/]")


def index_cmd(
    url: Annotated[str, typer.Argument(help="URL of the page to index.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the chunk store (default: store.path from config)."),
    ] = None,
) -> None:
    """Index a page without reading it back (no-op if already indexed)."""
    cfg = _load_config_or_exit()
    try:
        report, stored = asyncio.run(_index(cfg, url, db))
    except PageReaderError as exc:
        err_console.print(render_error(exc))
        raise typer.Exit(1) from exc

    if report is None:
        console.print(f"[dim]↷ Already indexed — {stored} chunks stored[/]")
        return
    _print_report(report)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _load_config_or_exit() -> PageReaderConfig:
    try:
        return load_config()
    except ConfigError as exc:
        err_console.print(render_error(exc))
        raise typer.Exit(1) from exc


def _db_path(cfg: PageReaderConfig, db: Path | None) -> str:
    return str(db) if db is not None else cfg.store.path


async def _read(cfg: PageReaderConfig, url: str, question: str | None, db: Path | None) -> str:
    async with PageReader.from_config(cfg, db_path=_db_path(cfg, db)) as reader:
        return await reader.read(url, question)


async def _index(
    cfg: PageReaderConfig, url: str, db: Path | None
) -> tuple[IndexReport | None, int]:
    async with PageReader.from_config(cfg, db_path=_db_path(cfg, db)) as reader:
        report = await reader.ensure_indexed(url)
        stored = reader.store.count_chunks(report.url if report else canonical_url(url))
        return report, stored


def _print_report(report: IndexReport) -> None:
    if report.chunk_count == 0:
        console.print(f"[yellow]✗ No chunks produced (empty page):[/] {escape(report.url)}")
        return
    console.print(
        f"[green]✓[/] {escape(report.url)}: {report.stored}/{report.chunk_count} chunks stored"
    )
    for failure in report.failures:
        console.print(
            f"  [yellow]✗ chunk {failure.chunk_index} ({failure.error.stage}):[/] "
            f"{escape(str(failure.error))}"
        )

"""pagereader status — list indexed pages."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from pagereader.cli.errors import render_error
from pagereader.config import ConfigError, PageReaderConfig, load_config
from pagereader.db.store import VectorStore
from pagereader.errors import PageReaderError

console = Console()


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the chunk store (default: store.path from config)."),
    ] = None,
) -> None:
    """Show the store location, embedding model, and indexed pages."""
    try:
        cfg = load_config()
    except ConfigError:
        cfg = PageReaderConfig()

    db_path = db if db is not None else Path(cfg.store.path)
    if not db_path.exists():
        console.print(
            Panel(
                f"[yellow]No store found at {escape(str(db_path))}.[/]\n"
                "  Run:  pagereader init",
                title="[bold]Store[/]",
                expand=False,
            )
        )
        return

    try:
        with VectorStore(
            db_path, model=cfg.embedding.model, dimensions=cfg.embedding.dimensions
        ) as store:
            pages = store.list_urls()
    except PageReaderError as exc:
        console.print(render_error(exc))
        raise typer.Exit(1) from exc

    size_mb = db_path.stat().st_size / (1024 * 1024)
    total = sum(n for _, n in pages)
    header = (
        f"Store:  {escape(str(db_path))} ({size_mb:.1f} MB)\n"
        f"Model:  {escape(cfg.embedding.model)} ({cfg.embedding.dimensions} dims)\n"
        f"Pages: [bold]{len(pages)}[/]  |  Chunks: [bold]{total:,}[/]"
    )
    console.print(Panel(header, title="[bold]Store[/]", expand=False))

    if not pages:
        console.print("[dim]No pages indexed yet.[/]")
        return

    table = Table(show_header=True, box=None, padding=(0, 1))
    table.add_column("Chunks", justify="right", style="bold")
    table.add_column("URL")
    for url, n in pages:
        table.add_row(str(n), escape(url))
    console.print(table)

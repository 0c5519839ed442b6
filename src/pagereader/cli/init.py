"""pagereader init — create the chunk store and the global config file.

Creates:
  .pagereader.db              — empty store with schema + vec table (or --db)
  ~/.pagereader/config.yaml   — global defaults (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from pagereader.cli.errors import render_error
from pagereader.config import ConfigError, ensure_global_config, load_config
from pagereader.db.store import VectorStore
from pagereader.errors import PageReaderError

console = Console()


def init_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the chunk store (default: store.path from config)."),
    ] = None,
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override global config path (for testing)."),
    ] = None,
) -> None:
    """Create the chunk store and ~/.pagereader/config.yaml if missing."""
    config_path = ensure_global_config(global_config)
    console.print(f"[green]✓[/] Global config: {escape(str(config_path))}")

    try:
        cfg = load_config(global_config_path=global_config)
        db_path = db if db is not None else Path(cfg.store.path)
        with VectorStore(
            db_path, model=cfg.embedding.model, dimensions=cfg.embedding.dimensions
        ):
            pass
    except (ConfigError, PageReaderError) as exc:
        console.print(render_error(exc))
        raise typer.Exit(1) from exc

    console.print(
        f"[green]✓[/] Store ready: {escape(str(db_path))} "
        f"[dim]({escape(cfg.embedding.model)}, {cfg.embedding.dimensions} dims)[/]"
    )

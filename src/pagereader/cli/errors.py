"""Rich error messages for the pagereader CLI.

Every error shown to the user names the pipeline stage that failed and the
action that fixes it.

Usage:
    from pagereader.cli.errors import render_error
    console.print(render_error(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from pagereader.config import ConfigError
from pagereader.errors import (
    CrawlBudgetExceeded,
    DimensionMismatchError,
    PageReaderError,
    SsrfError,
)

_STAGE_HINTS: dict[str, str] = {
    "fetch": "Check the URL is public and reachable, then retry.",
    "embedding": "Check the provider API key and model name, then retry.",
    "store": "Check the --db path is writable and not used by another process.",
    "index": "Retry; chunks that failed were not stored.",
}


def err_ssrf_blocked(url: str) -> str:
    """URL resolves to a private/reserved address."""
    return (
        f"[red]Error (fetch):[/] URL resolves to private address (SSRF protection): "
        f"'{escape(url)}'\n"
        "  Use a publicly reachable URL."
    )


def err_crawl_budget(message: str) -> str:
    return (
        f"[red]Error (fetch):[/] {escape(message)}\n"
        "  Raise crawl.max_pages in pagereader.yaml or start a new run."
    )


def err_dimension_mismatch(message: str) -> str:
    return (
        f"[red]Error (store):[/] {escape(message)}\n"
        "  Set embedding.dimensions to match the model, or use a fresh --db."
    )


def err_config(message: str) -> str:
    return (
        f"[red]Error (config):[/] {escape(message)}\n"
        "  Fix pagereader.yaml or ~/.pagereader/config.yaml."
    )


def render_error(exc: Exception) -> str:
    """Return a rich-markup message for *exc* naming the failed stage."""
    if isinstance(exc, SsrfError):
        return err_ssrf_blocked(exc.url or "")
    if isinstance(exc, CrawlBudgetExceeded):
        return err_crawl_budget(str(exc))
    if isinstance(exc, DimensionMismatchError):
        return err_dimension_mismatch(str(exc))
    if isinstance(exc, ConfigError):
        return err_config(str(exc))
    if isinstance(exc, PageReaderError):
        hint = _STAGE_HINTS.get(exc.stage, "")
        return f"[red]Error ({exc.stage}):[/] {escape(str(exc))}" + (f"\n  {hint}" if hint else "")
    return f"[red]Error:[/] {escape(str(exc))}"

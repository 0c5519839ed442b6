"""Error taxonomy for the page reader pipeline.

Every error carries the pipeline *stage* that failed so the request surface
can report "fetch", "embedding", "store" or "index" to the user without
inspecting the exception type.
"""

from __future__ import annotations


class PageReaderError(Exception):
    """Base class for all pipeline failures."""

    stage: str = "unknown"

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class FetchError(PageReaderError):
    """The page could not be retrieved (network, DNS, HTTP, policy)."""

    stage = "fetch"


class SsrfError(FetchError):
    """Raised when a URL resolves to a private or reserved address."""


class CrawlBudgetExceeded(FetchError):
    """Raised when the fetcher has already served its maximum page count."""


class EmbeddingError(PageReaderError):
    """An embedding could not be generated for a piece of text."""

    stage = "embedding"


class StoreError(PageReaderError):
    """A query or write against the vector store failed."""

    stage = "store"


class DimensionMismatchError(StoreError):
    """Raised when an embedding's width differs from the store's vector column."""


class IndexingError(PageReaderError):
    """A page produced chunks but none of them could be stored.

    Wraps the first per-chunk failure; ``stage`` reports the stage of that
    failure rather than ``"index"`` when one is available.
    """

    stage = "index"

    def __init__(
        self, message: str, *, url: str | None = None, cause: PageReaderError | None = None
    ) -> None:
        super().__init__(message, url=url)
        self.cause = cause
        if cause is not None:
            self.stage = cause.stage

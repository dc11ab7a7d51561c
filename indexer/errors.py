"""Error taxonomy shared by the indexer and the pipelines.

Every error carries the operation that failed and, where useful, the
offending input so callers have enough context to retry.
"""

from typing import Any, Optional


class RagError(Exception):
    """Base class for all ragcrawl errors."""

    def __init__(self, message: str, operation: Optional[str] = None, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.detail = detail

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class InvalidInput(RagError, ValueError):
    """Input rejected before any I/O took place."""
    pass


class InvalidQuery(InvalidInput):
    """Empty or malformed query text."""
    pass


class InvalidSeed(InvalidInput):
    """Crawl seed URL is not an absolute http(s) URL."""
    pass


class EmptyInput(InvalidInput):
    """Embedding requested for empty text."""
    pass


class TransientFetchFailure(RagError):
    """A single page could not be fetched. Never escapes a crawl."""

    def __init__(self, url: str, reason: str):
        super().__init__(reason, operation="fetch", detail=url)
        self.url = url


class ProviderError(RagError):
    """The embedding provider failed upstream."""
    pass


class StoreError(RagError):
    """The vector store failed."""
    pass


class DimensionMismatch(StoreError):
    """An embedding does not match the corpus dimensionality."""

    def __init__(self, expected: int, actual: int, operation: str = "insert"):
        super().__init__(
            f"Embedding has {actual} dimensions, corpus expects {expected}",
            operation=operation,
            detail={'expected': expected, 'actual': actual}
        )
        self.expected = expected
        self.actual = actual


class CacheUnavailable(RagError):
    """Cache backend unreachable or returned garbage. Treated as a miss."""
    pass

"""Exception hierarchy shared across the crawler."""

from __future__ import annotations


class LdesCrawlerError(Exception):
    """Base class for crawler errors."""


class FetchError(LdesCrawlerError):
    """A page or member could not be retrieved."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{message}: {url}")
        self.url = url
        self.status_code = status_code


class ParseError(LdesCrawlerError):
    """A document could not be turned into statements."""


class StateExportError(LdesCrawlerError):
    """Raised when a checkpoint is requested while the stream is still flowing."""


__all__ = ["FetchError", "LdesCrawlerError", "ParseError", "StateExportError"]

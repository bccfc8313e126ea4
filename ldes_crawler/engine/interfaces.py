"""Collaborator contracts consumed by the stream engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Protocol

if TYPE_CHECKING:
    from .fetcher import FetchResponse
    from .metadata import FeedMetadata
    from .terms import Statement


class PageFetcher(Protocol):
    def fetch(self, url: str, headers: Mapping[str, str] | None = None) -> "FetchResponse":
        ...


class DocumentParser(Protocol):
    def parse(self, body: str, base_url: str, mime_type: str | None) -> list["Statement"]:
        ...


class MetadataExtractor(Protocol):
    def extract(self, statements: list["Statement"], url: str) -> "FeedMetadata":
        ...


class RecordFormatter(Protocol):
    def format(self, member_uri: str, statements: list["Statement"]) -> Any:
        ...

    def encode(self, record: Any) -> Any:
        """Turn a buffered record into a JSON-compatible value."""
        ...

    def decode(self, payload: Any) -> Any:
        ...


__all__ = ["DocumentParser", "MetadataExtractor", "PageFetcher", "RecordFormatter"]

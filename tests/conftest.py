"""Shared fixtures: fake clock, in-memory page fetcher and config builders."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

import pytest

from ldes_crawler.config import ConfigLocator, ConfigRepository, EventStreamConfig, StreamConfig
from ldes_crawler.engine.fetcher import FetchResponse
from ldes_crawler.errors import FetchError

TREE = "https://w3id.org/tree#"
LDES = "https://w3id.org/ldes#"
RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"
PROV_GENERATED_AT_TIME = "http://www.w3.org/ns/prov#generatedAtTime"
XSD_DATETIME = "http://www.w3.org/2001/XMLSchema#dateTime"
DCT_TITLE = "http://purl.org/dc/terms/title"

FEED = "https://example.org/feed"


class FakeClock:
    """Injectable wall clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class StaticFetcher:
    """In-memory page fetcher serving canned documents."""

    def __init__(
        self,
        pages: Mapping[str, str] | None = None,
        content_type: str | None = "application/n-quads",
    ) -> None:
        self.pages: dict[str, str] = dict(pages or {})
        self.content_type = content_type
        self.response_headers: dict[str, dict[str, str]] = {}
        self.redirects: dict[str, str] = {}
        self.failures: set[str] = set()
        self.requests: list[str] = []
        self.request_headers: list[dict[str, str]] = []
        self.closed = False

    def fetch(self, url: str, headers: Mapping[str, str] | None = None) -> FetchResponse:
        self.requests.append(url)
        self.request_headers.append(dict(headers or {}))
        if url in self.failures:
            raise FetchError(url, "Unexpected status 500", 500)
        final_url = self.redirects.get(url, url)
        if final_url not in self.pages:
            raise FetchError(url, "Unexpected status 404", 404)
        return FetchResponse(
            url=final_url,
            status_code=200,
            text=self.pages[final_url],
            content_type=self.content_type,
            headers=self.response_headers.get(final_url, {}),
            request_headers=dict(headers or {}),
        )

    def close(self) -> None:
        self.closed = True


def build_page(
    url: str,
    *,
    members: Sequence[str] = (),
    relations: Iterable[tuple[str, str, str | None]] = (),
    generated: Mapping[str, str] | None = None,
    view: str | None = None,
    collection: str = FEED,
) -> str:
    """Render a TREE fragment as N-Quads.

    ``relations`` holds ``(target, relation type local name, value)`` triples.
    """

    lines: list[str] = []
    for member in members:
        lines.append(f"<{collection}> <{TREE}member> <{member}> .")
        lines.append(f'<{member}> <{DCT_TITLE}> "{member.rsplit("/", 1)[-1]}" .')
        if generated and member in generated:
            lines.append(
                f'<{member}> <{PROV_GENERATED_AT_TIME}> "{generated[member]}"^^<{XSD_DATETIME}> .'
            )
    for index, (target, relation_type, value) in enumerate(relations):
        relation_id = f"_:r{index}"
        lines.append(f"<{url}> <{TREE}relation> {relation_id} .")
        lines.append(f"{relation_id} <{RDF_TYPE}> <{TREE}{relation_type}> .")
        lines.append(f"{relation_id} <{TREE}node> <{target}> .")
        if value is not None:
            lines.append(f'{relation_id} <{TREE}value> "{value}"^^<{XSD_DATETIME}> .')
    if view:
        lines.append(f"<{collection}> <{RDF_TYPE}> <{LDES}EventStream> .")
        lines.append(f"<{collection}> <{TREE}view> <{view}> .")
    return "\n".join(lines) + "\n"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def static_fetcher() -> StaticFetcher:
    return StaticFetcher()


@pytest.fixture
def stream_options() -> Callable[..., EventStreamConfig]:
    def _builder(**overrides: Any) -> EventStreamConfig:
        base: dict[str, Any] = {
            "representation": "quads",
            "disable_polling": True,
            "mime_type": "application/n-quads",
        }
        base.update(overrides)
        return EventStreamConfig(**base)

    return _builder


@pytest.fixture
def sample_stream_config() -> Callable[..., StreamConfig]:
    def _builder(**overrides: Any) -> StreamConfig:
        base: dict[str, Any] = {
            "stream_name": "example",
            "url": f"{FEED}/page-1",
            "options": EventStreamConfig(representation="quads", disable_polling=True),
        }
        base.update(overrides)
        return StreamConfig(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("LDES_CRAWLER_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository


@pytest.fixture
def page_builder() -> Callable[..., str]:
    return build_page

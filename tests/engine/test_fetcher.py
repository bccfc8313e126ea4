from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from ldes_crawler.engine.cache_policy import CachePolicy, parse_cache_control
from ldes_crawler.engine.fetcher import DEFAULT_ACCEPT, FetchResponse, HttpPageFetcher, parse_content_type
from ldes_crawler.errors import FetchError


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)


def test_fetcher_merges_accept_and_custom_headers() -> None:
    captured: dict[str, httpx.Headers] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["headers"] = request.headers
        return httpx.Response(
            200,
            text="{}",
            headers={"Content-Type": "application/ld+json; charset=utf-8", "Cache-Control": "max-age=30"},
        )

    fetcher = HttpPageFetcher(client=_client(handler))
    response = fetcher.fetch("https://example.org/feed", {"X-Api-Key": "secret"})
    fetcher.close()

    assert captured["headers"]["accept"] == DEFAULT_ACCEPT
    assert captured["headers"]["x-api-key"] == "secret"
    assert response.content_type == "application/ld+json"
    assert response.status_code == 200
    assert response.request_headers["X-Api-Key"] == "secret"


def test_fetcher_allows_overriding_accept() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers["accept"])
        return httpx.Response(200, text="")

    fetcher = HttpPageFetcher(client=_client(handler))
    fetcher.fetch("https://example.org/feed", {"Accept": "application/n-quads"})

    assert seen == ["application/n-quads"]


def test_fetcher_records_final_url_after_redirect() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/feed":
            return httpx.Response(302, headers={"Location": "https://example.org/feed/page-1"})
        return httpx.Response(200, text="", headers={"Content-Type": "application/n-quads"})

    fetcher = HttpPageFetcher(client=_client(handler))
    response = fetcher.fetch("https://example.org/feed")

    assert response.url == "https://example.org/feed/page-1"
    assert response.content_type == "application/n-quads"


def test_fetcher_raises_on_http_error_status() -> None:
    fetcher = HttpPageFetcher(client=_client(lambda request: httpx.Response(503, text="busy")))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://example.org/feed")

    assert excinfo.value.status_code == 503
    assert excinfo.value.url == "https://example.org/feed"


def test_fetcher_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    fetcher = HttpPageFetcher(client=_client(handler))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://example.org/feed")

    assert excinfo.value.status_code is None
    assert "ConnectError" in str(excinfo.value)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("application/ld+json; charset=utf-8", "application/ld+json"),
        ("Application/N-Quads", "application/n-quads"),
        ("", None),
        (None, None),
    ],
)
def test_parse_content_type(raw, expected) -> None:
    assert parse_content_type(raw) == expected


def test_parse_cache_control_directives() -> None:
    assert parse_cache_control('max-age=60, no-transform, private="x"') == {
        "max-age": "60",
        "no-transform": None,
        "private": "x",
    }


def test_cache_policy_max_age_minus_age() -> None:
    received = datetime(2024, 1, 1, tzinfo=timezone.utc)
    policy = CachePolicy({}, 200, {"Cache-Control": "max-age=60", "Age": "10"}, response_time=received)

    assert policy.storable()
    assert policy.time_to_live(received + timedelta(seconds=5)) == 45000


def test_cache_policy_expires_relative_to_date() -> None:
    received = datetime(2024, 1, 1, tzinfo=timezone.utc)
    headers = {
        "Date": "Mon, 01 Jan 2024 00:00:00 GMT",
        "Expires": "Mon, 01 Jan 2024 00:02:00 GMT",
    }
    policy = CachePolicy({}, 200, headers, response_time=received)

    assert policy.time_to_live(received) == 120000


def test_cache_policy_last_modified_heuristic() -> None:
    received = datetime(2024, 1, 1, tzinfo=timezone.utc)
    headers = {
        "Date": "Mon, 01 Jan 2024 00:00:00 GMT",
        "Last-Modified": "Sun, 31 Dec 2023 23:00:00 GMT",
    }
    policy = CachePolicy({}, 200, headers, response_time=received)

    assert policy.time_to_live(received) == 360000


@pytest.mark.parametrize(
    ("request_headers", "response_headers", "status"),
    [
        ({}, {"Cache-Control": "no-store"}, 200),
        ({"Cache-Control": "no-store"}, {"Cache-Control": "max-age=60"}, 200),
        ({}, {}, 500),
    ],
)
def test_cache_policy_not_storable(request_headers, response_headers, status) -> None:
    assert not CachePolicy(request_headers, status, response_headers).storable()


def test_no_cache_means_zero_ttl() -> None:
    policy = CachePolicy({}, 200, {"Cache-Control": "no-cache, max-age=60"})
    assert policy.time_to_live() == 0


def test_response_ttl_is_zero_when_not_storable() -> None:
    response = FetchResponse(
        url="https://example.org/feed",
        status_code=200,
        text="",
        headers={"Cache-Control": "no-store, max-age=60"},
    )
    assert response.time_to_live_ms() == 0

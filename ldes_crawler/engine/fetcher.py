"""HTTP page fetching for fragments and dereferenced members."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Mapping

import httpx
import structlog

from ..errors import FetchError
from .cache_policy import CachePolicy

DEFAULT_ACCEPT = "application/ld+json"


def parse_content_type(value: str | None) -> str | None:
    if not value:
        return None
    media_type = value.split(";", 1)[0].strip().lower()
    return media_type or None


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    status_code: int
    text: str
    content_type: str | None = None
    headers: Dict[str, str] = field(default_factory=dict)
    request_headers: Dict[str, str] = field(default_factory=dict)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def cache_policy(self) -> CachePolicy:
        return CachePolicy(
            self.request_headers,
            self.status_code,
            self.headers,
            response_time=self.received_at,
        )

    def time_to_live_ms(self, now: datetime | None = None) -> int:
        """Freshness lifetime in milliseconds, 0 when the response is not storable."""

        policy = self.cache_policy()
        return policy.time_to_live(now) if policy.storable() else 0


class HttpPageFetcher:
    """Retrieve pages over HTTP with an ``Accept`` header suited to linked data."""

    def __init__(
        self,
        user_agent: str | None = None,
        timeout: float = 20.0,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.logger = logger or structlog.get_logger("ldes_crawler.fetcher")
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": user_agent} if user_agent else None,
        )

    def close(self) -> None:
        self._client.close()

    def fetch(self, url: str, headers: Mapping[str, str] | None = None) -> FetchResponse:
        req_headers = {"Accept": DEFAULT_ACCEPT}
        req_headers.update({k: str(v) for k, v in (headers or {}).items()})
        try:
            response = self._client.request("GET", url, headers=req_headers)
        except httpx.HTTPError as exc:
            self.logger.warning("fetch_error", url=url, error=str(exc))
            raise FetchError(url, f"Request failed ({exc.__class__.__name__})") from exc
        if self._is_failure(response):
            raise FetchError(url, f"Unexpected status {response.status_code}", response.status_code)
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            content_type=parse_content_type(response.headers.get("content-type")),
            headers=dict(response.headers),
            request_headers=req_headers,
        )

    @staticmethod
    def _is_failure(response: httpx.Response) -> bool:
        return response.status_code >= 400


__all__ = ["DEFAULT_ACCEPT", "FetchResponse", "HttpPageFetcher", "parse_content_type"]

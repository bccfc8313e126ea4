"""HTTP caching evaluation from the perspective of a private (single-user) cache."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping

# Status codes cacheable by default (RFC 7231 §6.1)
_CACHEABLE_BY_DEFAULT = {200, 203, 204, 206, 300, 301, 308, 404, 405, 410, 414, 501}
_UNDERSTOOD_STATUSES = _CACHEABLE_BY_DEFAULT | {302, 307}
_HEURISTIC_FRACTION = 0.1


def parse_cache_control(value: str | None) -> dict[str, str | None]:
    directives: dict[str, str | None] = {}
    if not value:
        return directives
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if "=" in part:
            key, raw = part.split("=", 1)
            directives[key.strip().lower()] = raw.strip().strip('"')
        else:
            directives[part.lower()] = None
    return directives


def _http_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _seconds(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(0.0, float(int(value)))
    except ValueError:
        return None


class CachePolicy:
    """Compute storability and time-to-live for one request/response pair.

    Shared-cache directives (``s-maxage``, ``proxy-revalidate``) are ignored and
    ``private`` responses are storable.
    """

    def __init__(
        self,
        request_headers: Mapping[str, str],
        status_code: int,
        response_headers: Mapping[str, str],
        method: str = "GET",
        response_time: datetime | None = None,
    ) -> None:
        self.method = method.upper()
        self.status_code = status_code
        self._request = {k.lower(): v for k, v in request_headers.items()}
        self._response = {k.lower(): v for k, v in response_headers.items()}
        self._req_cc = parse_cache_control(self._request.get("cache-control"))
        self._res_cc = parse_cache_control(self._response.get("cache-control"))
        self.response_time = response_time or datetime.now(timezone.utc)

    def storable(self) -> bool:
        if self.method != "GET":
            return False
        if "no-store" in self._req_cc or "no-store" in self._res_cc:
            return False
        if self.status_code not in _UNDERSTOOD_STATUSES:
            return False
        return (
            self.status_code in _CACHEABLE_BY_DEFAULT
            or "expires" in self._response
            or "max-age" in self._res_cc
            or "public" in self._res_cc
            or "private" in self._res_cc
        )

    def age(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        header_age = _seconds(self._response.get("age")) or 0.0
        resident = max(0.0, (now - self.response_time).total_seconds())
        return header_age + resident

    def max_age(self) -> float:
        if "no-cache" in self._res_cc:
            return 0.0
        max_age = _seconds(self._res_cc.get("max-age")) if "max-age" in self._res_cc else None
        if max_age is not None:
            return max_age
        date = _http_date(self._response.get("date")) or self.response_time
        if "expires" in self._response:
            expires = _http_date(self._response.get("expires"))
            if expires is None:
                return 0.0
            return max(0.0, (expires - date).total_seconds())
        last_modified = _http_date(self._response.get("last-modified"))
        if last_modified is not None and self.status_code in _CACHEABLE_BY_DEFAULT:
            return max(0.0, (date - last_modified).total_seconds() * _HEURISTIC_FRACTION)
        return 0.0

    def time_to_live(self, now: datetime | None = None) -> int:
        """Remaining freshness in milliseconds."""

        return int(max(0.0, self.max_age() - self.age(now)) * 1000)


__all__ = ["CachePolicy", "parse_cache_control"]

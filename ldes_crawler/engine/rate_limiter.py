"""Spacing of outgoing requests against the origin server."""

from __future__ import annotations

import time
from threading import Lock
from typing import Callable

import structlog


class RateLimiter:
    """Enforce a minimum interval between consecutive requests.

    Callers are serialised: a second caller only starts its own wait once the
    first caller's turn is over, so concurrent member dereferences and the
    fragment fetch never reach the server closer together than the interval.
    """

    def __init__(
        self,
        interval_ms: float = 0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.interval_ms = max(0.0, float(interval_ms))
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()
        self._last_request: float | None = None
        self.logger = logger or structlog.get_logger("ldes_crawler.rate_limiter")

    @classmethod
    def from_requests_per_minute(cls, requests_per_minute: float | None, **kwargs) -> "RateLimiter":
        if not requests_per_minute:
            return cls(0, **kwargs)
        return cls(60000.0 / requests_per_minute, **kwargs)

    def plan_request(self, target: str) -> None:
        """Block until ``target`` may be requested."""

        if self.interval_ms <= 0:
            return
        interval = self.interval_ms / 1000.0
        with self._lock:
            if self._last_request is not None:
                wait = self._last_request + interval - self._clock()
                if wait > 0:
                    self.logger.debug("rate_limit_wait", target=target, wait_seconds=round(wait, 3))
                    self._sleep(wait)
            self._last_request = self._clock()


__all__ = ["RateLimiter"]

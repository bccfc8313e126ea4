"""Fragment registry deciding which page to fetch next and when."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class FragmentInfo:
    """Scheduling state of one fragment.

    ``refetch_time`` is ``None`` while the fragment is off the schedule, i.e.
    after it was handed out for fetching and before it is added again.
    """

    refetch_time: datetime | None
    blacklisted: bool = False

    @property
    def scheduled(self) -> bool:
        return self.refetch_time is not None and not self.blacklisted


@dataclass(frozen=True, slots=True)
class NextFragment:
    url: str
    refetch_time: datetime


class FragmentBookkeeper:
    """Keep track of known fragments and their next eligible fetch time.

    Selection picks the earliest eligible fragment; ties go to the fragment
    discovered first, which is the registry's insertion order.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._fragments: dict[str, FragmentInfo] = {}

    def add_fragment(self, url: str, ttl_ms: float) -> None:
        refetch_time = self._clock() + timedelta(milliseconds=max(0.0, ttl_ms))
        info = self._fragments.get(url)
        if info is None:
            self._fragments[url] = FragmentInfo(refetch_time)
        elif info.blacklisted:
            return
        elif info.refetch_time is None or refetch_time < info.refetch_time:
            info.refetch_time = refetch_time

    def blacklist_fragment(self, url: str) -> None:
        info = self._fragments.get(url)
        if info is None:
            self._fragments[url] = FragmentInfo(None, blacklisted=True)
        else:
            info.blacklisted = True

    def is_known(self, url: str) -> bool:
        return url in self._fragments

    def is_blacklisted(self, url: str) -> bool:
        info = self._fragments.get(url)
        return info is not None and info.blacklisted

    def next_fragment_exists(self) -> bool:
        return any(info.scheduled for info in self._fragments.values())

    def get_next_fragment_to_fetch(self) -> NextFragment | None:
        """Take the earliest scheduled fragment off the schedule and return it."""

        best_url: str | None = None
        best_time: datetime | None = None
        for url, info in self._fragments.items():
            if not info.scheduled:
                continue
            if best_time is None or info.refetch_time < best_time:
                best_url, best_time = url, info.refetch_time
        if best_url is None or best_time is None:
            return None
        self._fragments[best_url].refetch_time = None
        return NextFragment(best_url, best_time)

    def restore_fragment(self, fragment: NextFragment) -> None:
        """Put a handed-out fragment back at its original time after an aborted cycle."""

        info = self._fragments.get(fragment.url)
        if info is None or info.blacklisted:
            return
        if info.refetch_time is None or fragment.refetch_time < info.refetch_time:
            info.refetch_time = fragment.refetch_time

    def in_syncing_mode(self) -> bool:
        """True when no known fragment is due yet, i.e. the backlog is drained."""

        now = self._clock()
        return not any(
            info.scheduled and info.refetch_time <= now for info in self._fragments.values()
        )

    def serialize(self) -> dict[str, dict[str, Any]]:
        return {
            url: {
                "refetch_time": info.refetch_time.isoformat() if info.refetch_time else None,
                "blacklisted": info.blacklisted,
            }
            for url, info in self._fragments.items()
        }

    def deserialize(self, payload: dict[str, dict[str, Any]]) -> None:
        fragments: dict[str, FragmentInfo] = {}
        for url, entry in payload.items():
            raw_time = entry.get("refetch_time")
            refetch_time = datetime.fromisoformat(raw_time) if raw_time else None
            if refetch_time is not None and refetch_time.tzinfo is None:
                refetch_time = refetch_time.replace(tzinfo=timezone.utc)
            fragments[url] = FragmentInfo(refetch_time, bool(entry.get("blacklisted", False)))
        self._fragments = fragments

    def __len__(self) -> int:
        return len(self._fragments)


__all__ = ["FragmentBookkeeper", "FragmentInfo", "NextFragment", "utcnow"]

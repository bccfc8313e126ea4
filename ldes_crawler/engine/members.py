"""Member selection and realisation for one fetched page."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Iterator, Mapping

import structlog

from .dedup import DedupCache
from .interfaces import DocumentParser, PageFetcher
from .rate_limiter import RateLimiter
from .terms import Statement, TermType

PROV_GENERATED_AT_TIME = "http://www.w3.org/ns/prov#generatedAtTime"


@dataclass(slots=True)
class MemberCandidate:
    """A member that passed the filters.

    ``statements`` is ``None`` when the body still has to be dereferenced.
    """

    uri: str
    statements: list[Statement] | None


def index_by_subject(statements: Iterable[Statement]) -> dict[str, list[Statement]]:
    index: dict[str, list[Statement]] = {}
    for statement in statements:
        index.setdefault(statement.subject.value, []).append(statement)
    return index


def extract_member(
    member_uri: str, subject_index: Mapping[str, list[Statement]], done: set[str]
) -> list[Statement]:
    """Collect every statement reachable from ``member_uri``.

    ``done`` holds identifiers that must not be entered; it is seeded with the
    page's other members so one member never absorbs another's description.
    """

    stack = [member_uri]
    result: list[Statement] = []
    while stack:
        subject = stack.pop()
        for statement in subject_index.get(subject, ()):
            result.append(statement)
            obj = statement.object
            if obj.is_reference and obj.value not in done:
                done.add(obj.value)
                stack.append(obj.value)
    return result


def coerce_datetime(value: str) -> datetime | None:
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def extract_event_time(statements: Iterable[Statement]) -> datetime | None:
    for statement in statements:
        if (
            statement.subject.term_type is TermType.NAMED_NODE
            and statement.predicate.value == PROV_GENERATED_AT_TIME
        ):
            return coerce_datetime(statement.object.value)
    return None


class MemberExtractor:
    """Apply recency and emit-once filters and build member bodies."""

    def __init__(
        self,
        processed: DedupCache,
        *,
        from_time: datetime | None = None,
        emit_member_once: bool = False,
        dereference_members: bool = False,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.processed = processed
        self.from_time = from_time
        self.emit_member_once = emit_member_once
        self.dereference_members = dereference_members
        self.logger = logger or structlog.get_logger("ldes_crawler.members")

    def select(self, statements: list[Statement], member_uris: list[str]) -> Iterator[MemberCandidate]:
        subject_index = index_by_subject(statements)
        for member_uri in member_uris:
            if self.emit_member_once and self.processed.has(member_uri):
                continue
            if self.dereference_members:
                body = None
                time_source = subject_index.get(member_uri, [])
            else:
                body = extract_member(member_uri, subject_index, set(member_uris))
                time_source = body
            if self.from_time is not None:
                event_time = extract_event_time(time_source)
                if event_time is None or event_time < self.from_time:
                    self.logger.debug(
                        "member_before_cutoff",
                        member=member_uri,
                        event_time=event_time.isoformat() if event_time else None,
                    )
                    continue
            self.processed.set(member_uri)
            yield MemberCandidate(member_uri, body)


class MemberDereferencer:
    """Fetch a member's own document; safe to call from worker threads."""

    def __init__(
        self,
        fetcher: PageFetcher,
        parser: DocumentParser,
        rate_limiter: RateLimiter,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.parser = parser
        self.rate_limiter = rate_limiter
        self.headers = dict(headers or {})

    def dereference(self, member_uri: str) -> list[Statement]:
        self.rate_limiter.plan_request(member_uri)
        response = self.fetcher.fetch(member_uri, self.headers)
        return self.parser.parse(response.text, response.url, response.content_type)


__all__ = [
    "MemberCandidate",
    "MemberDereferencer",
    "MemberExtractor",
    "PROV_GENERATED_AT_TIME",
    "coerce_datetime",
    "extract_event_time",
    "extract_member",
    "index_by_subject",
]

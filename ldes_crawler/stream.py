"""Event stream engine: fetch fragments, extract members, hand records to the consumer."""

from __future__ import annotations

import json
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import Event
from typing import Any, Callable, Iterable, Iterator

import structlog
from pydantic import BaseModel, Field

from .config import EventStreamConfig
from .engine.bookkeeper import FragmentBookkeeper, utcnow
from .engine.dedup import DedupCache
from .engine.fetcher import HttpPageFetcher
from .engine.formatter import StatementFormatter
from .engine.interfaces import DocumentParser, MetadataExtractor, PageFetcher, RecordFormatter
from .engine.members import MemberCandidate, MemberDereferencer, MemberExtractor, coerce_datetime
from .engine.metadata import TREE_LESS_THAN_RELATION, FeedMetadata, Relation, TreeMetadataExtractor
from .engine.parser import RdfDocumentParser, RemoteContextLoader
from .engine.rate_limiter import RateLimiter
from .engine.thread_pool import ThreadPoolManager
from .errors import StateExportError

EVENTS = ("page_processed", "synchronizing", "metadata", "member_error", "end")


class StreamState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SYNCHRONIZING = "synchronizing"
    PAUSED = "paused"
    ENDED = "ended"


class StreamCheckpoint(BaseModel):
    """Persisted traversal state; each field is serialized on its own."""

    bookkeeper: dict[str, dict[str, Any]] = Field(default_factory=dict)
    member_buffer: str = "[]"
    processed_uris: str = "[]"


@dataclass(slots=True)
class Collaborators:
    fetcher: PageFetcher
    parser: DocumentParser
    metadata_extractor: MetadataExtractor
    formatter: RecordFormatter

    @classmethod
    def default(cls, config: EventStreamConfig, fetcher: PageFetcher | None = None) -> "Collaborators":
        fetcher = fetcher or HttpPageFetcher()
        return cls(
            fetcher=fetcher,
            parser=RdfDocumentParser(config.mime_type, RemoteContextLoader(fetcher)),
            metadata_extractor=TreeMetadataExtractor(),
            formatter=StatementFormatter(
                config.representation,
                config.mime_type,
                config.jsonld_context,
                config.disable_framing,
            ),
        )


@dataclass(slots=True)
class StreamStats:
    pages: int = 0
    failed_pages: int = 0
    emitted: int = 0
    failed_members: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "pages": self.pages,
            "failed_pages": self.failed_pages,
            "emitted": self.emitted,
            "failed_members": self.failed_members,
        }


class EventStream:
    """Pull-driven state machine over one feed.

    Every call to :meth:`read` (or step of iteration) that finds the buffer
    empty triggers one evaluation: pause, end, entering synchronization, or
    fetching the next eligible fragment. All bookkeeping happens on the
    calling thread; member dereferences run on a worker pool and are collected
    back here in discovery order.
    """

    def __init__(
        self,
        url: str,
        config: EventStreamConfig | None = None,
        collaborators: Collaborators | None = None,
        state: StreamCheckpoint | dict | None = None,
        *,
        name: str | None = None,
        clock: Callable[[], datetime] = utcnow,
        rate_limiter: RateLimiter | None = None,
        thread_pool: ThreadPoolManager | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.url = url
        self.config = config or EventStreamConfig()
        self.name = name or url
        self._owns_fetcher = collaborators is None
        self.collaborators = collaborators or Collaborators.default(self.config)
        self.logger = logger or structlog.get_logger("ldes_crawler.stream").bind(stream=self.name)
        self._clock = clock
        self.bookkeeper = FragmentBookkeeper(clock)
        self.processed = DedupCache(self.config.processed_uris_count)
        self.rate_limiter = rate_limiter or RateLimiter.from_requests_per_minute(
            self.config.requests_per_minute
        )
        self.member_extractor = MemberExtractor(
            self.processed,
            from_time=self.config.from_time,
            emit_member_once=self.config.emit_member_once,
            dereference_members=self.config.dereference_members,
            logger=self.logger,
        )
        self._dereferencer = MemberDereferencer(
            self.collaborators.fetcher,
            self.collaborators.parser,
            self.rate_limiter,
            self.config.request_headers,
        )
        self._thread_pool = thread_pool
        self.stats = StreamStats()

        self._buffer: deque[Any] = deque()
        self._listeners: dict[str, list[Callable[..., None]]] = {event: [] for event in EVENTS}
        self._state = StreamState.IDLE
        self._paused = False
        self._downloading = False
        self._syncing = False
        self._destroyed = False
        self._wakeup = Event()

        if state is not None:
            self.import_state(state)
        else:
            self.bookkeeper.add_fragment(self.url, 0)

    # ------------------------------------------------------------------
    # Consumer surface
    # ------------------------------------------------------------------
    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def ended(self) -> bool:
        return self._state is StreamState.ENDED

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def is_paused(self) -> bool:
        return self._paused

    def is_buffering(self) -> bool:
        """True while a fragment is being fetched and processed."""

        return self._downloading

    def on(self, event: str, handler: Callable[..., None]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        self._listeners[event].append(handler)

    def ignore_pages(self, urls: Iterable[str]) -> None:
        for url in urls:
            self.bookkeeper.blacklist_fragment(url)

    def pause(self) -> "EventStream":
        self._paused = True
        if not self._downloading and self._state is not StreamState.ENDED:
            self._state = StreamState.PAUSED
        return self

    def resume(self) -> "EventStream":
        self._paused = False
        if self._state is StreamState.PAUSED:
            self._state = StreamState.SYNCHRONIZING if self._syncing else StreamState.IDLE
        return self

    def destroy(self) -> None:
        """Stop for good; a pending refetch wait is cancelled immediately."""

        self._destroyed = True
        self._wakeup.set()
        self._buffer.clear()
        if self._thread_pool is not None:
            self._thread_pool.release(self.name)

    def close(self) -> None:
        self.destroy()
        fetcher = self.collaborators.fetcher
        if self._owns_fetcher and hasattr(fetcher, "close"):
            fetcher.close()

    def __enter__(self) -> "EventStream":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def read(self) -> Any | None:
        """Return the next record, or ``None`` once paused, ended or destroyed."""

        while True:
            if self._buffer:
                self.stats.emitted += 1
                return self._buffer.popleft()
            if self._destroyed or self._paused or self._downloading or self.ended:
                return None
            self._read()

    def __iter__(self) -> Iterator[Any]:
        while True:
            record = self.read()
            if record is None:
                return
            yield record

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------
    def export_state(self) -> StreamCheckpoint:
        """Capture traversal state; buffered records move into the checkpoint."""

        if not self._paused and not self.ended:
            raise StateExportError("Cannot export state while stream is not paused or ended")
        if self._downloading:
            raise StateExportError("Cannot export state while a fragment is being processed")
        formatter = self.collaborators.formatter
        member_buffer = [formatter.encode(record) for record in self._buffer]
        self._buffer.clear()
        return StreamCheckpoint(
            bookkeeper=self.bookkeeper.serialize(),
            member_buffer=json.dumps(member_buffer, ensure_ascii=False),
            processed_uris=json.dumps(self.processed.dump(), ensure_ascii=False),
        )

    def import_state(self, state: StreamCheckpoint | dict) -> None:
        checkpoint = StreamCheckpoint.model_validate(state)
        self.bookkeeper.deserialize(checkpoint.bookkeeper)
        payload = json.loads(checkpoint.member_buffer) if checkpoint.member_buffer else None
        if payload:
            formatter = self.collaborators.formatter
            self._buffer.extendleft(reversed([formatter.decode(item) for item in payload]))
        self.processed.load(json.loads(checkpoint.processed_uris) if checkpoint.processed_uris else [])

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def _emit(self, event: str, *args: Any) -> None:
        for handler in list(self._listeners[event]):
            handler(*args)

    def _read(self) -> None:
        if self._destroyed or self._downloading or self.ended:
            return
        if self._paused:
            self._state = StreamState.PAUSED
            return
        if not self.bookkeeper.next_fragment_exists():
            self._state = StreamState.ENDED
            self.logger.info("stream_ended", **self.stats.as_dict())
            self._emit("end")
            return
        if (
            not self.config.disable_synchronization
            and not self._syncing
            and self.bookkeeper.in_syncing_mode()
        ):
            self._syncing = True
            self._state = StreamState.SYNCHRONIZING
            self.logger.info("synchronizing")
            self._emit("synchronizing")
            return
        self._fetch_next_page()

    def _fetch_next_page(self) -> None:
        next_fragment = self.bookkeeper.get_next_fragment_to_fetch()
        if next_fragment is None:
            return
        self._downloading = True
        self._state = StreamState.FETCHING
        completed = False
        try:
            wait = (next_fragment.refetch_time - self._clock()).total_seconds()
            if wait > 0:
                self.logger.debug(
                    "waiting_before_refetch", url=next_fragment.url, wait_seconds=round(wait, 3)
                )
                if self._wakeup.wait(wait):
                    return
            self._retrieve(next_fragment.url)
            completed = True
        finally:
            self._downloading = False
            if not completed:
                # Interrupted or destroyed mid-cycle: the fragment stays due for a checkpoint.
                self.bookkeeper.restore_fragment(next_fragment)
                self.logger.debug("fetch_cycle_aborted", url=next_fragment.url)
        if self._destroyed:
            self._buffer.clear()
            return
        self._state = StreamState.SYNCHRONIZING if self._syncing else StreamState.IDLE
        self._emit("page_processed", next_fragment.url)

    def _retrieve(self, page_url: str) -> None:
        fetcher = self.collaborators.fetcher
        started = time.monotonic()
        self.rate_limiter.plan_request(page_url)
        self.stats.pages += 1
        try:
            page = fetcher.fetch(page_url, self.config.request_headers)
            self.logger.debug(
                "page_fetched",
                url=page.url,
                status=page.status_code,
                elapsed_ms=int((time.monotonic() - started) * 1000),
            )
            # The response may have been redirected away from page_url.
            self.processed.set(page_url)
            self.processed.set(page.url)

            polling_interval = self.config.effective_polling_interval
            if polling_interval:
                ttl = max(polling_interval, page.time_to_live_ms())
                self.bookkeeper.add_fragment(page.url, ttl)

            statements = self.collaborators.parser.parse(page.text, page.url, page.content_type)
            metadata = self.collaborators.metadata_extractor.extract(statements, page.url)
            self._emit("metadata", page.url, metadata)

            if not metadata.relations:
                self._follow_view(page_url, metadata)
            self._follow_relations(metadata)

            candidates = self.member_extractor.select(statements, metadata.member_uris())
            self._process_members(candidates)
        except Exception as exc:  # noqa: BLE001
            self.stats.failed_pages += 1
            self.logger.error("page_failed", url=page_url, error=str(exc), exc_info=True)

    def _follow_view(self, page_url: str, metadata: FeedMetadata) -> None:
        """Pivot from a collection URI to its first view."""

        for candidate in (page_url, page_url.replace("://www.", "://")):
            collection = metadata.collections.get(candidate)
            if collection is not None and collection.views:
                self.bookkeeper.add_fragment(collection.views[0], 0)
                return

    def _follow_relations(self, metadata: FeedMetadata) -> None:
        for relation in metadata.relations.values():
            if self._prunable(relation):
                self.logger.debug("relation_pruned", relation=relation.id, value=relation.value)
                continue
            for node in relation.nodes:
                if self.config.disable_synchronization and self.processed.has(node):
                    continue
                self.bookkeeper.add_fragment(node, 0)

    def _prunable(self, relation: Relation) -> bool:
        from_time = self.config.from_time
        if from_time is None or relation.type != TREE_LESS_THAN_RELATION or relation.value is None:
            return False
        bound = coerce_datetime(relation.value)
        return bound is not None and bound <= from_time

    def _process_members(self, candidates: Iterable[MemberCandidate]) -> None:
        pending: list[tuple[str, list | Future]] = []
        for candidate in candidates:
            if candidate.statements is None:
                pending.append((candidate.uri, self._submit_dereference(candidate.uri)))
            else:
                pending.append((candidate.uri, candidate.statements))

        formatter = self.collaborators.formatter
        for member_uri, body in pending:
            if isinstance(body, Future):
                try:
                    statements = body.result()
                except Exception as exc:  # noqa: BLE001
                    self.stats.failed_members += 1
                    self.logger.error("member_dereference_failed", member=member_uri, error=str(exc))
                    self._emit("member_error", member_uri, exc)
                    continue
            else:
                statements = body
            if self._destroyed:
                return
            try:
                record = formatter.format(member_uri, statements)
            except Exception as exc:  # noqa: BLE001
                self.stats.failed_members += 1
                self.logger.error("member_failed", member=member_uri, error=str(exc))
                continue
            self._buffer.append(record)

    def _submit_dereference(self, member_uri: str) -> Future:
        if self._thread_pool is None:
            self._thread_pool = ThreadPoolManager(self.config.dereference_workers)
        executor = self._thread_pool.get(self.name, self.config.dereference_workers)
        return executor.submit(self._dereferencer.dereference, member_uri)


__all__ = [
    "Collaborators",
    "EVENTS",
    "EventStream",
    "StreamCheckpoint",
    "StreamState",
    "StreamStats",
]

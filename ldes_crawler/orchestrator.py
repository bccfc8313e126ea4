"""Orchestrator wiring configured streams to checkpoints and exporters."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable

from .config import ConfigRepository, EventStreamConfig, GlobalConfig, StreamConfig
from .engine import HttpPageFetcher, ThreadPoolManager
from .engine.exporter import BaseExporter, FileExporter
from .infra import CheckpointStore
from .logging_conf import configure_logging, stream_logger
from .stream import Collaborators, EventStream, StreamCheckpoint


class Orchestrator:
    """Central coordinator running configured streams one session at a time.

    A session restores the stream's checkpoint, drains records into the
    stream's exporter and saves a fresh checkpoint when the stream pauses or
    ends, so the next session picks up where this one stopped.
    """

    def __init__(
        self,
        config_repository: ConfigRepository,
        checkpoints: CheckpointStore,
        thread_pool: ThreadPoolManager,
        fetcher_factory: Callable[[GlobalConfig], Any] | None = None,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.checkpoints = checkpoints
        self.thread_pool = thread_pool
        self.fetcher_factory = fetcher_factory or self._default_fetcher
        self.logger = configure_logging().bind(component="orchestrator")

    # ------------------------------------------------------------------
    def open_stream(
        self,
        url: str,
        options: EventStreamConfig,
        *,
        name: str,
        checkpoint: StreamCheckpoint | None = None,
        logger=None,
    ) -> EventStream:
        fetcher = self.fetcher_factory(self.global_config)
        return EventStream(
            url,
            options,
            Collaborators.default(options, fetcher),
            checkpoint,
            name=name,
            thread_pool=self.thread_pool,
            logger=logger,
        )

    def run_stream(
        self,
        stream_name: str,
        *,
        until_synchronized: bool = True,
        limit: int | None = None,
        exporter: BaseExporter | None = None,
    ) -> dict[str, Any]:
        stream_cfg = self.config_repository.load_stream(stream_name)
        log = stream_logger(stream_cfg.stream_name)
        checkpoint = self.checkpoints.load(stream_cfg.stream_name)
        log.info("stream_session_started", url=stream_cfg.url, restored=checkpoint is not None)

        stream = self.open_stream(
            stream_cfg.url,
            stream_cfg.options,
            name=stream_cfg.stream_name,
            checkpoint=checkpoint,
            logger=log,
        )
        if until_synchronized:
            stream.on("synchronizing", stream.pause)
        exporter = exporter or self._create_exporter(stream_cfg, stream)

        summary: dict[str, Any] = {
            "emitted": 0,
            "pages": 0,
            "failed_members": 0,
            "restored": checkpoint is not None,
            "ended": False,
        }
        try:
            try:
                for record in stream:
                    exporter.export(record)
                    summary["emitted"] += 1
                    if limit is not None and summary["emitted"] >= limit:
                        break
            except KeyboardInterrupt:
                log.warning("stream_interrupted")
            summary["ended"] = stream.ended
            if not stream.ended:
                stream.pause()
            self.checkpoints.save(stream_cfg.stream_name, stream.export_state())
        finally:
            exporter.flush()
            exporter.close()
            stream.close()
            stream.collaborators.fetcher.close()
        summary["pages"] = stream.stats.pages
        summary["failed_members"] = stream.stats.failed_members
        log.info("stream_session_finished", **summary)
        return summary

    def reset_stream(self, stream_name: str) -> bool:
        stream_cfg = self.config_repository.load_stream(stream_name)
        removed = self.checkpoints.delete(stream_cfg.stream_name)
        self.logger.info("checkpoint_reset", stream=stream_cfg.stream_name, removed=removed)
        return removed

    def describe_state(self, stream_name: str) -> dict[str, Any] | None:
        stream_cfg = self.config_repository.load_stream(stream_name)
        checkpoint = self.checkpoints.load(stream_cfg.stream_name)
        if checkpoint is None:
            return None
        fragments = checkpoint.bookkeeper
        scheduled = [
            (url, info.get("refetch_time"))
            for url, info in fragments.items()
            if info.get("refetch_time") and not info.get("blacklisted")
        ]
        scheduled.sort(key=lambda item: item[1])
        return {
            "fragments": len(fragments),
            "scheduled": scheduled,
            "blacklisted": sum(1 for info in fragments.values() if info.get("blacklisted")),
            "buffered": len(_json_list(checkpoint.member_buffer)),
            "processed": len(_json_list(checkpoint.processed_uris)),
            "updated_at": self.checkpoints.updated_at(stream_cfg.stream_name),
        }

    # ------------------------------------------------------------------
    def _create_exporter(self, stream_cfg: StreamConfig, stream: EventStream) -> BaseExporter:
        run_tag = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        return FileExporter(
            self.config_repository.outputs_dir(),
            stream_cfg.stream_name,
            stream_cfg.output_format,
            run_tag=run_tag,
            encoder=stream.collaborators.formatter.encode,
        )

    @staticmethod
    def _default_fetcher(global_config: GlobalConfig) -> HttpPageFetcher:
        return HttpPageFetcher(
            user_agent=global_config.user_agent,
            timeout=global_config.request_timeout,
        )


def _json_list(payload: str) -> list:
    value = json.loads(payload) if payload else []
    return value if isinstance(value, list) else []


__all__ = ["Orchestrator"]

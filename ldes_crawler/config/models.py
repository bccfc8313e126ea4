"""Pydantic models used across the crawler configuration flow."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class OutputRepresentation(str, Enum):
    """In-memory shapes for emitted members; ``None`` means serialized text."""

    QUADS = "quads"
    OBJECT = "object"


class EventStreamConfig(BaseModel):
    """Options controlling traversal, synchronization and output of one stream."""

    polling_interval: int = Field(default=5000, description="Refetch floor in milliseconds.")
    representation: OutputRepresentation | None = None
    request_headers: dict[str, str] = Field(default_factory=dict)
    mime_type: str = "application/ld+json"
    jsonld_context: Any = None
    from_time: datetime | None = None
    emit_member_once: bool = False
    disable_polling: bool = False
    disable_synchronization: bool = False
    disable_framing: bool = False
    dereference_members: bool = False
    requests_per_minute: float = 0
    processed_uris_count: int = 10000
    dereference_workers: int = 4

    @field_validator("request_headers", mode="before")
    @classmethod
    def _coerce_headers(cls, value: Any) -> dict[str, str]:
        if value in (None, ""):
            return {}
        if not isinstance(value, dict):
            raise ValueError("request_headers expects a mapping")
        coerced: dict[str, str] = {}
        for key, raw in value.items():
            if isinstance(raw, (list, tuple)):
                coerced[str(key)] = ", ".join(str(item) for item in raw)
            else:
                coerced[str(key)] = str(raw)
        return coerced

    @field_validator("from_time")
    @classmethod
    def _normalise_from_time(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "EventStreamConfig":
        if self.polling_interval < 0:
            raise ValueError("polling_interval must be >= 0")
        if self.requests_per_minute < 0:
            raise ValueError("requests_per_minute must be >= 0")
        if self.processed_uris_count < 1:
            raise ValueError("processed_uris_count must be >= 1")
        if self.dereference_workers < 1:
            raise ValueError("dereference_workers must be >= 1")
        return self

    @property
    def effective_polling_interval(self) -> int | None:
        """Polling interval used to reschedule fetched pages, ``None`` when off."""

        if self.disable_polling or self.disable_synchronization or not self.polling_interval:
            return None
        return self.polling_interval


class StreamConfig(BaseModel):
    """A named stream stored on disk."""

    stream_name: str
    url: str
    output_format: Literal["jsonl", "txt"] = "jsonl"
    options: EventStreamConfig = Field(default_factory=EventStreamConfig)

    @model_validator(mode="after")
    def _validate_url(self) -> "StreamConfig":
        if not self.url.startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) URL")
        if not self.stream_name.strip():
            raise ValueError("stream_name cannot be empty")
        return self


class GlobalConfig(BaseModel):
    """Global controls shared across streams."""

    user_agent: str | None = "ldes-crawler"
    request_timeout: float = 20.0
    thread_pool_workers: int = 4
    state_db: Path = Field(default=Path("data/state/checkpoints.db"))
    outputs_dir: Path = Field(default=Path("data/outputs"))
    streams_dir: Path = Field(default=Path("data/streams"))

    @field_validator("state_db", "outputs_dir", "streams_dir", mode="before")
    @classmethod
    def _coerce_paths(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request_timeout must be > 0")
        return value

    @field_validator("thread_pool_workers")
    @classmethod
    def _positive_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("thread_pool_workers must be >= 1")
        return value


__all__ = [
    "EventStreamConfig",
    "GlobalConfig",
    "OutputRepresentation",
    "StreamConfig",
]

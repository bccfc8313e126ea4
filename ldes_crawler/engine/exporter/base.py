"""Exporter Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable


class BaseExporter(ABC):
    """Uniform contract for sinks receiving emitted member records."""

    @abstractmethod
    def export(self, record: Any) -> None:
        """Persist a single record."""

    def export_many(self, records: Iterable[Any]) -> int:
        count = 0
        for record in records:
            self.export(record)
            count += 1
        return count

    @abstractmethod
    def flush(self) -> None:
        """Flush buffered data to destination."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""

    def __enter__(self) -> "BaseExporter":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


__all__ = ["BaseExporter"]

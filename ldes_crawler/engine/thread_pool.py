"""Worker pool used for concurrent member dereferencing."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Any, Callable


class ThreadPoolManager:
    """Lazily create one executor per stream and shut them down together."""

    def __init__(self, default_workers: int = 4) -> None:
        self.default_workers = default_workers
        self._executors: dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()

    def get(self, stream_name: str, max_workers: int | None = None) -> ThreadPoolExecutor:
        with self._lock:
            if stream_name not in self._executors:
                self._executors[stream_name] = ThreadPoolExecutor(
                    max_workers=max_workers or self.default_workers,
                    thread_name_prefix=f"dereference-{stream_name}",
                )
            return self._executors[stream_name]

    def submit(self, stream_name: str, fn: Callable[..., Any], *args: Any) -> Future:
        return self.get(stream_name).submit(fn, *args)

    def release(self, stream_name: str) -> None:
        with self._lock:
            executor = self._executors.pop(stream_name, None)
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def shutdown(self) -> None:
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
        for executor in executors:
            executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["ThreadPoolManager"]

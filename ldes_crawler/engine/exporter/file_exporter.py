"""File based exporter writing JSON lines or raw serialized members."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .base import BaseExporter


class FileExporter(BaseExporter):
    """Append emitted records to one file per stream run.

    ``jsonl`` writes one JSON document per record, running structured records
    through ``encoder`` first. ``txt`` writes serialized records as they are.
    """

    def __init__(
        self,
        output_dir: Path,
        stream_name: str,
        fmt: str = "jsonl",
        run_tag: str | None = None,
        encoder: Callable[[Any], Any] | None = None,
    ) -> None:
        if fmt not in ("jsonl", "txt"):
            raise ValueError(f"Unsupported export format: {fmt}")
        self.output_dir = output_dir
        self.stream_name = stream_name
        self.format = fmt
        self.encoder = encoder
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.run_tag = run_tag or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        slug = re.sub(r"[^0-9A-Za-z_-]+", "_", stream_name.strip()) or "stream"
        self.path = self.output_dir / f"{slug}-{self.run_tag}.{self.format}"
        self._file = self.path.open("a", encoding="utf-8", newline="")
        self.count = 0

    def export(self, record: Any) -> None:
        self.count += 1
        if self.format == "jsonl":
            payload = self.encoder(record) if self.encoder else record
            if isinstance(payload, str):
                payload = payload.rstrip("\n")
            json.dump(payload, self._file, ensure_ascii=False)
            self._file.write("\n")
            return
        text = record if isinstance(record, str) else json.dumps(record, ensure_ascii=False)
        self._file.write(text)
        if not text.endswith("\n"):
            self._file.write("\n")

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


__all__ = ["FileExporter"]

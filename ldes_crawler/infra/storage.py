"""SQLite persistence for stream checkpoints."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict

from ..stream import StreamCheckpoint


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS stream_state (
                stream_name TEXT PRIMARY KEY,
                bookkeeper TEXT NOT NULL,
                member_buffer TEXT NOT NULL,
                processed_uris TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.commit()

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


class CheckpointStore:
    """Save and restore :class:`StreamCheckpoint` rows keyed by stream name."""

    def __init__(self, path: Path, manager: SQLiteManager | None = None) -> None:
        self.path = path
        self.manager = manager or SQLiteManager()

    @property
    def _conn(self) -> sqlite3.Connection:
        return self.manager.connect(self.path)

    def save(self, stream_name: str, checkpoint: StreamCheckpoint) -> None:
        conn = self._conn
        conn.execute(
            """
            INSERT INTO stream_state (stream_name, bookkeeper, member_buffer, processed_uris, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(stream_name) DO UPDATE SET
                bookkeeper = excluded.bookkeeper,
                member_buffer = excluded.member_buffer,
                processed_uris = excluded.processed_uris,
                updated_at = excluded.updated_at
            """,
            (
                stream_name,
                json.dumps(checkpoint.bookkeeper, ensure_ascii=False),
                checkpoint.member_buffer,
                checkpoint.processed_uris,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        conn.commit()

    def load(self, stream_name: str) -> StreamCheckpoint | None:
        row = self._conn.execute(
            "SELECT bookkeeper, member_buffer, processed_uris FROM stream_state WHERE stream_name = ?",
            (stream_name,),
        ).fetchone()
        if row is None:
            return None
        return StreamCheckpoint(
            bookkeeper=json.loads(row["bookkeeper"]),
            member_buffer=row["member_buffer"],
            processed_uris=row["processed_uris"],
        )

    def updated_at(self, stream_name: str) -> str | None:
        row = self._conn.execute(
            "SELECT updated_at FROM stream_state WHERE stream_name = ?", (stream_name,)
        ).fetchone()
        return row["updated_at"] if row else None

    def delete(self, stream_name: str) -> bool:
        conn = self._conn
        cursor = conn.execute("DELETE FROM stream_state WHERE stream_name = ?", (stream_name,))
        conn.commit()
        return cursor.rowcount > 0

    def list_streams(self) -> list[str]:
        rows = self._conn.execute("SELECT stream_name FROM stream_state ORDER BY stream_name").fetchall()
        return [row["stream_name"] for row in rows]

    def close(self) -> None:
        self.manager.close_all()


__all__ = ["CheckpointStore", "SQLiteManager"]

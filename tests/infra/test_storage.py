from __future__ import annotations

from ldes_crawler.infra import CheckpointStore, SQLiteManager
from ldes_crawler.stream import StreamCheckpoint


def _checkpoint(buffer: str = "[]") -> StreamCheckpoint:
    return StreamCheckpoint(
        bookkeeper={
            "https://example.org/feed/page-1": {
                "refetch_time": "2024-01-01T00:00:05+00:00",
                "blacklisted": False,
            }
        },
        member_buffer=buffer,
        processed_uris='["https://example.org/m/1"]',
    )


def test_sqlite_manager_initialises_schema(tmp_path) -> None:
    manager = SQLiteManager()
    conn = manager.connect(tmp_path / "state" / "checkpoints.db")
    columns = conn.execute("PRAGMA table_info(stream_state)").fetchall()
    column_names = [row["name"] for row in columns]
    assert column_names == ["stream_name", "bookkeeper", "member_buffer", "processed_uris", "updated_at"]
    manager.close_all()


def test_sqlite_manager_reset(tmp_path) -> None:
    manager = SQLiteManager()
    path = tmp_path / "checkpoints.db"
    store = CheckpointStore(path, manager)
    store.save("demo", _checkpoint())
    manager.reset(path)
    assert not path.exists()
    assert store.load("demo") is None
    store.close()


def test_checkpoint_store_roundtrip_and_upsert(tmp_path) -> None:
    store = CheckpointStore(tmp_path / "checkpoints.db")
    assert store.load("demo") is None
    assert store.updated_at("demo") is None

    store.save("demo", _checkpoint())
    assert store.load("demo") == _checkpoint()
    assert store.updated_at("demo") is not None

    store.save("demo", _checkpoint('[{"id": "https://example.org/m/2"}]'))
    assert store.load("demo").member_buffer == '[{"id": "https://example.org/m/2"}]'
    assert store.list_streams() == ["demo"]
    store.close()


def test_checkpoint_store_delete(tmp_path) -> None:
    store = CheckpointStore(tmp_path / "checkpoints.db")
    store.save("alpha", _checkpoint())
    store.save("beta", _checkpoint())

    assert store.delete("alpha") is True
    assert store.delete("alpha") is False
    assert store.list_streams() == ["beta"]
    store.close()

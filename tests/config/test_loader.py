from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from ldes_crawler.config.loader import ConfigLocator, ConfigRepository, _slugify
from ldes_crawler.config.models import GlobalConfig, OutputRepresentation


def test_config_locator_uses_env_and_creates_directories(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("LDES_CRAWLER_HOME", str(tmp_path))
    locator = ConfigLocator()

    assert locator.project_root == tmp_path.resolve()
    assert locator.streams_dir == (tmp_path / "data" / "streams").resolve()
    assert locator.global_config_path() == locator.data_dir / "global_config.yaml"
    for path in (locator.data_dir, locator.streams_dir, locator.logs_dir):
        assert path.exists()
    assert locator.resolve(Path("data/outputs")) == (tmp_path / "data" / "outputs").resolve()


def test_config_repository_global_roundtrip(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LDES_CRAWLER_HOME", raising=False)
    repo = ConfigRepository(ConfigLocator(project_root=tmp_path))
    config = GlobalConfig(user_agent="tests", request_timeout=5, thread_pool_workers=2)
    repo.save_global_config(config)

    reloaded = ConfigRepository(ConfigLocator(project_root=tmp_path)).load_global_config()
    assert reloaded == config
    assert repo.state_db_path() == (tmp_path / "data" / "state" / "checkpoints.db").resolve()


def test_config_repository_writes_default_global_config(temp_config_repository: ConfigRepository) -> None:
    config = temp_config_repository.load_global_config()
    assert config == GlobalConfig()
    assert temp_config_repository.locator.global_config_path().exists()


def test_config_repository_stream_cycle(temp_config_repository: ConfigRepository, sample_stream_config) -> None:
    stream = sample_stream_config(
        stream_name="City Sensors",
        options={
            "representation": "object",
            "from_time": "2024-01-01T02:00:00+02:00",
            "request_headers": {"Authorization": "Bearer token"},
            "jsonld_context": {"ex": "http://example.org/ns#"},
        },
    )
    path = temp_config_repository.save_stream(stream)
    assert path.name == "city-sensors.yaml"

    loaded = temp_config_repository.load_stream("City Sensors")
    assert loaded == stream
    assert loaded.options.representation is OutputRepresentation.OBJECT
    assert loaded.options.from_time == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert [cfg.stream_name for cfg in temp_config_repository.list_streams()] == ["City Sensors"]

    temp_config_repository.delete_stream("City Sensors")
    assert temp_config_repository.list_streams() == []


def test_config_repository_missing_stream(temp_config_repository: ConfigRepository) -> None:
    with pytest.raises(FileNotFoundError):
        temp_config_repository.load_stream("missing")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Example Stream", "example-stream"),
        ("Already-Slug", "already-slug"),
        ("C++ Archive", "c---archive"),
    ],
)
def test_slugify_behaviour(raw: str, expected: str) -> None:
    assert _slugify(raw) == expected

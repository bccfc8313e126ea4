from __future__ import annotations

from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from ldes_crawler.app import AppState, app
from ldes_crawler.config.models import OutputRepresentation
from ldes_crawler.stream import Collaborators, EventStream

FEED = "https://example.org/feed"


class StubOrchestrator:
    def __init__(self, summary=None, describe=None, fetcher=None) -> None:
        self.summary = summary or {}
        self.describe = describe
        self.fetcher = fetcher
        self.calls: list[tuple] = []

    def run_stream(self, name: str, *, until_synchronized: bool = True, limit=None, exporter=None):
        self.calls.append((name, until_synchronized, limit))
        return self.summary

    def reset_stream(self, name: str) -> bool:
        self.calls.append((f"reset:{name}",))
        return True

    def describe_state(self, name: str):
        return self.describe

    def open_stream(self, url, options, *, name, checkpoint=None, logger=None) -> EventStream:
        self.calls.append(("open", url, options))
        return EventStream(url, options, Collaborators.default(options, self.fetcher), name=name)


def make_state(streams=(), orchestrator=None, repository=None) -> AppState:
    by_name = {stream.stream_name: stream for stream in streams}

    def load_stream(name):
        if name not in by_name:
            raise FileNotFoundError(name)
        return by_name[name]

    repository = repository or SimpleNamespace(list_streams=lambda: list(streams), load_stream=load_stream)
    checkpoints = SimpleNamespace(updated_at=lambda name: "2024-01-01T00:00:00+00:00")
    return AppState(
        repository=repository,
        orchestrator=orchestrator or StubOrchestrator(),
        checkpoints=checkpoints,
    )


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_cli_list_streams(monkeypatch, runner, sample_stream_config) -> None:
    state = make_state([sample_stream_config()])
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: state)

    result = runner.invoke(app, ["stream", "list"])
    assert result.exit_code == 0, result.stdout
    assert "事件流总览" in result.stdout
    assert "example" in result.stdout


def test_cli_list_streams_empty(monkeypatch, runner) -> None:
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: make_state())

    result = runner.invoke(app, ["stream", "list"])
    assert result.exit_code == 0
    assert "暂无事件流配置" in result.stdout


def test_cli_add_stream_persists_config(monkeypatch, runner, temp_config_repository) -> None:
    state = make_state(repository=temp_config_repository)
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: state)

    result = runner.invoke(
        app,
        [
            "stream",
            "add",
            "demo",
            f"{FEED}/page-1",
            "--polling-interval",
            "1000",
            "--representation",
            "quads",
            "--from-time",
            "2024-01-01T00:00:00Z",
            "--emit-once",
        ],
    )
    assert result.exit_code == 0, result.stdout
    saved = temp_config_repository.load_stream("demo")
    assert saved.options.polling_interval == 1000
    assert saved.options.representation is OutputRepresentation.QUADS
    assert saved.options.emit_member_once is True
    assert saved.options.from_time.isoformat() == "2024-01-01T00:00:00+00:00"


def test_cli_add_stream_rejects_invalid_url(monkeypatch, runner, temp_config_repository) -> None:
    state = make_state(repository=temp_config_repository)
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: state)

    result = runner.invoke(app, ["stream", "add", "demo", "ftp://example.org/feed"])
    assert result.exit_code == 1
    assert "配置无效" in result.stdout
    assert temp_config_repository.list_streams() == []


def test_cli_run_stream(monkeypatch, runner, sample_stream_config) -> None:
    summary = {"emitted": 3, "pages": 2, "failed_members": 0, "restored": False, "ended": False}
    orchestrator = StubOrchestrator(summary)
    state = make_state([sample_stream_config()], orchestrator)
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: state)

    result = runner.invoke(app, ["stream", "run", "example", "--limit", "5"])
    assert result.exit_code == 0, result.stdout
    assert orchestrator.calls == [("example", True, 5)]
    assert "运行结果" in result.stdout
    assert "输出成员" in result.stdout

    result = runner.invoke(app, ["stream", "run", "example", "--follow"])
    assert orchestrator.calls[-1] == ("example", False, None)


def test_cli_run_missing_stream(monkeypatch, runner) -> None:
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: make_state())

    result = runner.invoke(app, ["stream", "run", "missing"])
    assert result.exit_code == 1
    assert "未找到事件流" in result.stdout


def test_cli_reset_stream(monkeypatch, runner, sample_stream_config) -> None:
    orchestrator = StubOrchestrator()
    state = make_state([sample_stream_config()], orchestrator)
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: state)

    result = runner.invoke(app, ["stream", "reset", "example", "--yes"])
    assert result.exit_code == 0, result.stdout
    assert orchestrator.calls == [("reset:example",)]
    assert "检查点已清空" in result.stdout

    result = runner.invoke(app, ["stream", "reset", "example"], input="n\n")
    assert "已取消操作" in result.stdout
    assert len(orchestrator.calls) == 1


def test_cli_state_show(monkeypatch, runner, sample_stream_config) -> None:
    describe = {
        "fragments": 2,
        "scheduled": [(f"{FEED}/page-1", "2024-01-01T00:01:00+00:00")],
        "blacklisted": 0,
        "buffered": 1,
        "processed": 4,
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    state = make_state([sample_stream_config()], StubOrchestrator(describe=describe))
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: state)

    result = runner.invoke(app, ["state", "show", "example"])
    assert result.exit_code == 0, result.stdout
    assert "缓冲成员 1 条" in result.stdout
    assert "待抓取页面" in result.stdout
    assert "2024-01-01T00:01:00+00:00" in result.stdout


def test_cli_state_show_without_checkpoint(monkeypatch, runner, sample_stream_config) -> None:
    state = make_state([sample_stream_config()], StubOrchestrator(describe=None))
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: state)

    result = runner.invoke(app, ["state", "show", "example"])
    assert result.exit_code == 0
    assert "没有检查点" in result.stdout


def test_cli_run_url_prints_members(monkeypatch, runner, static_fetcher, page_builder) -> None:
    page = f"{FEED}/page-1"
    static_fetcher.pages[page] = page_builder(page, members=[f"{FEED}/m/1", f"{FEED}/m/2"])
    orchestrator = StubOrchestrator(fetcher=static_fetcher)
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: make_state(orchestrator=orchestrator))

    result = runner.invoke(
        app, ["run", page, "--mime-type", "application/n-quads", "-H", "Authorization: Bearer abc"]
    )
    assert result.exit_code == 0, result.stdout
    assert f"<{FEED}/m/1>" in result.stdout
    assert f"<{FEED}/m/2>" in result.stdout
    assert "共输出 2 个成员" in result.stdout
    options = orchestrator.calls[0][2]
    assert options.request_headers == {"Authorization": "Bearer abc"}
    assert static_fetcher.requests == [page]
    assert static_fetcher.closed


def test_cli_run_url_rejects_malformed_header(monkeypatch, runner) -> None:
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: make_state())

    result = runner.invoke(app, ["run", f"{FEED}/page-1", "-H", "no-colon"])
    assert result.exit_code == 2


def test_cli_log_tail(monkeypatch, runner, tmp_path) -> None:
    monkeypatch.setenv("LDES_CRAWLER_HOME", str(tmp_path))
    monkeypatch.setattr("ldes_crawler.app.build_state", lambda verbose: make_state())
    log_path = tmp_path / "logs" / "streams" / "demo.log"
    log_path.parent.mkdir(parents=True)
    log_path.write_text("first line\nsecond line\n", encoding="utf-8")

    result = runner.invoke(app, ["log", "tail", "--stream", "demo", "--tail", "1"])
    assert result.exit_code == 0, result.stdout
    assert "second line" in result.stdout
    assert "first line" not in result.stdout

    result = runner.invoke(app, ["log", "list"])
    assert "demo.log" in result.stdout

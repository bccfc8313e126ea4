"""Typer CLI entrypoint for ldes-crawler."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table
from typer import BadParameter

from .config import ConfigRepository, EventStreamConfig, OutputRepresentation, StreamConfig
from .engine import ThreadPoolManager
from .errors import LdesCrawlerError
from .infra import CheckpointStore
from .logging_conf import available_stream_logs, configure_logging, default_log_dir, tail_log
from .orchestrator import Orchestrator

app = typer.Typer(
    help="ldes-crawler 命令行工具：持续跟踪 LDES / TREE 事件流",
    no_args_is_help=True,
    rich_markup_mode=None,
)
stream_app = typer.Typer(name="stream", help="事件流配置与运行命令", no_args_is_help=True)
state_app = typer.Typer(name="state", help="检查点查看命令", no_args_is_help=True)
log_app = typer.Typer(name="log", help="日志查看命令", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    orchestrator: Orchestrator
    checkpoints: CheckpointStore


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    thread_pool = ThreadPoolManager(global_config.thread_pool_workers)
    checkpoints = CheckpointStore(repository.state_db_path())
    orchestrator = Orchestrator(
        config_repository=repository,
        checkpoints=checkpoints,
        thread_pool=thread_pool,
    )
    return AppState(repository=repository, orchestrator=orchestrator, checkpoints=checkpoints)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _parse_datetime_option(value: Optional[str], option_name: str) -> Optional[datetime]:
    if value is None:
        return None
    text = value.strip()
    if not text:
        raise BadParameter(f"{option_name} 不能为空。")
    normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        candidate = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise BadParameter(
            f"{option_name} 需使用 ISO8601 时间，例如 2024-10-14T08:00:00Z。"
        ) from exc
    if candidate.tzinfo is None:
        return candidate.replace(tzinfo=timezone.utc)
    return candidate.astimezone(timezone.utc)


def _parse_headers(values: Sequence[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise BadParameter(f"请求头格式应为 Name:Value，收到：{raw}")
        headers[name.strip()] = value.strip()
    return headers


def _load_stream_or_exit(state: AppState, name: str) -> StreamConfig:
    try:
        return state.repository.load_stream(name)
    except FileNotFoundError:
        console.print(f"未找到事件流 `{name}`，先使用 `ldes-crawler stream add` 创建。", style="yellow")
        raise typer.Exit(code=1)


def _render_record(record: Any, encode) -> str:
    if isinstance(record, str):
        return record.rstrip("\n")
    return json.dumps(encode(record), ensure_ascii=False)


def _render_streams_table(streams: Sequence[StreamConfig], checkpoints: CheckpointStore) -> Table:
    table = Table(title=f"事件流总览 · 共 {len(streams)} 个", box=box.SIMPLE_HEAD)
    table.add_column("名称", style="cyan", no_wrap=True)
    table.add_column("URL", overflow="fold")
    table.add_column("输出", style="green")
    table.add_column("轮询", style="magenta")
    table.add_column("检查点", style="yellow")
    for stream in streams:
        interval = stream.options.effective_polling_interval
        table.add_row(
            stream.stream_name,
            stream.url,
            stream.output_format,
            f"{interval} ms" if interval else "关闭",
            checkpoints.updated_at(stream.stream_name) or "-",
        )
    return table


app.add_typer(stream_app, name="stream")
app.add_typer(state_app, name="state")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="开启调试日志", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="临时跟踪一个事件流并把成员逐条输出到终端（不保存检查点）。")
def run_url(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="事件流或起始页面的 URL。"),
    limit: Optional[int] = typer.Option(None, "--limit", help="输出 N 条后停止。"),
    follow: bool = typer.Option(False, "--follow", help="同步完成后继续轮询。", is_flag=True),
    from_time: Optional[str] = typer.Option(None, "--from-time", help="只输出该时间之后生成的成员。"),
    emit_once: bool = typer.Option(False, "--emit-once", help="每个成员只输出一次。", is_flag=True),
    requests_per_minute: float = typer.Option(0, "--rpm", help="每分钟请求上限，0 为不限。"),
    mime_type: str = typer.Option("application/ld+json", "--mime-type", help="输出序列化格式。"),
    header: List[str] = typer.Option([], "--header", "-H", help="附加请求头 Name:Value，可重复。"),
) -> None:
    state = _get_state(ctx)
    try:
        options = EventStreamConfig(
            from_time=_parse_datetime_option(from_time, "--from-time"),
            emit_member_once=emit_once,
            requests_per_minute=requests_per_minute,
            mime_type=mime_type,
            request_headers=_parse_headers(header),
        )
    except ValidationError as exc:
        raise BadParameter(str(exc)) from exc
    stream = state.orchestrator.open_stream(url, options, name="adhoc")
    if not follow:
        stream.on("synchronizing", stream.pause)
    encode = stream.collaborators.formatter.encode
    emitted = 0
    try:
        for record in stream:
            console.print(_render_record(record, encode), markup=False, highlight=False, soft_wrap=True)
            emitted += 1
            if limit is not None and emitted >= limit:
                break
    except KeyboardInterrupt:
        console.print("已中断。", style="yellow")
    finally:
        stream.close()
        stream.collaborators.fetcher.close()
    console.print(f"共输出 {emitted} 个成员，抓取 {stream.stats.pages} 个页面。", style="green")


@stream_app.command("list", help="查看已配置的事件流。")
def stream_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    streams = state.repository.list_streams()
    if not streams:
        console.print("暂无事件流配置，使用 `ldes-crawler stream add` 创建。", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_streams_table(streams, state.checkpoints))


@stream_app.command("add", help="创建新的事件流配置。")
def stream_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="事件流名称。"),
    url: str = typer.Argument(..., help="事件流 URL。"),
    output_format: str = typer.Option("jsonl", "--format", help="输出格式：jsonl 或 txt。"),
    polling_interval: int = typer.Option(5000, "--polling-interval", help="轮询间隔（毫秒）。"),
    representation: Optional[OutputRepresentation] = typer.Option(
        None, "--representation", help="成员表示：quads / object，留空为序列化文本。"
    ),
    from_time: Optional[str] = typer.Option(None, "--from-time", help="只输出该时间之后生成的成员。"),
    emit_once: bool = typer.Option(False, "--emit-once", help="每个成员只输出一次。", is_flag=True),
    requests_per_minute: float = typer.Option(0, "--rpm", help="每分钟请求上限，0 为不限。"),
) -> None:
    state = _get_state(ctx)
    try:
        config = StreamConfig(
            stream_name=name,
            url=url,
            output_format=output_format,
            options=EventStreamConfig(
                polling_interval=polling_interval,
                representation=representation,
                from_time=_parse_datetime_option(from_time, "--from-time"),
                emit_member_once=emit_once,
                requests_per_minute=requests_per_minute,
            ),
        )
    except ValidationError as exc:
        console.print(f"配置无效：{exc}", style="red")
        raise typer.Exit(code=1)
    path = state.repository.save_stream(config)
    console.print(f"事件流 `{name}` 已保存到 {path}", style="green")


@stream_app.command("run", help="运行指定事件流，直到同步完成或达到上限，并保存检查点。")
def stream_run(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="事件流名称。"),
    limit: Optional[int] = typer.Option(None, "--limit", help="输出 N 条后暂停并保存检查点。"),
    follow: bool = typer.Option(False, "--follow", help="同步完成后继续轮询，Ctrl+C 结束。", is_flag=True),
) -> None:
    state = _get_state(ctx)
    stream_cfg = _load_stream_or_exit(state, name)
    try:
        summary = state.orchestrator.run_stream(
            stream_cfg.stream_name, until_synchronized=not follow, limit=limit
        )
    except LdesCrawlerError as exc:
        console.print(f"运行失败：{exc}", style="red")
        raise typer.Exit(code=1)
    table = Table(title=f"{stream_cfg.stream_name} 运行结果", box=box.SIMPLE_HEAD)
    table.add_column("指标", style="cyan")
    table.add_column("数值", style="green")
    table.add_row("输出成员", str(summary["emitted"]))
    table.add_row("抓取页面", str(summary["pages"]))
    table.add_row("失败成员", str(summary["failed_members"]))
    table.add_row("已结束", "是" if summary["ended"] else "否")
    console.print(table)


@stream_app.command("reset", help="删除指定事件流的检查点，下次从头开始。")
def stream_reset(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="事件流名称。"),
    yes: bool = typer.Option(False, "--yes", help="跳过确认提示。", is_flag=True),
) -> None:
    state = _get_state(ctx)
    stream_cfg = _load_stream_or_exit(state, name)
    if not yes:
        confirm = typer.confirm(f"确定要清空 `{stream_cfg.stream_name}` 的检查点？", default=False)
        if not confirm:
            console.print("已取消操作。", style="yellow")
            raise typer.Exit(code=0)
    if state.orchestrator.reset_stream(stream_cfg.stream_name):
        console.print(f"事件流 `{stream_cfg.stream_name}` 的检查点已清空。", style="green")
    else:
        console.print(f"事件流 `{stream_cfg.stream_name}` 没有检查点。", style="dim")


@state_app.command("show", help="查看事件流检查点中的调度与缓冲情况。")
def state_show(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="事件流名称。"),
    limit: int = typer.Option(20, "--limit", help="最多显示的待抓取页面数。"),
) -> None:
    state = _get_state(ctx)
    stream_cfg = _load_stream_or_exit(state, name)
    summary = state.orchestrator.describe_state(stream_cfg.stream_name)
    if summary is None:
        console.print("没有检查点。", style="dim")
        return
    console.print(
        f"页面 {summary['fragments']} 个 · 屏蔽 {summary['blacklisted']} 个 · "
        f"缓冲成员 {summary['buffered']} 条 · 已处理 URI {summary['processed']} 个 · "
        f"更新于 {summary['updated_at']}",
        style="cyan",
    )
    scheduled = summary["scheduled"][:limit]
    if not scheduled:
        console.print("没有待抓取的页面。", style="dim")
        return
    table = Table(title=f"待抓取页面（前 {len(scheduled)} 个）", box=box.SIMPLE_HEAD)
    table.add_column("下次抓取", style="green")
    table.add_column("URL", overflow="fold")
    for url, refetch_time in scheduled:
        table.add_row(str(refetch_time), url)
    console.print(table)


@log_app.command("list", help="列出可用的事件流日志文件。")
def log_list() -> None:
    logs = list(available_stream_logs())
    if not logs:
        console.print("暂未生成任何事件流日志。", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("文件名", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("tail", help="查看日志的最近内容。")
def log_tail(
    name: Optional[str] = typer.Option(None, "--stream", help="事件流名称（为空则展示全局日志）。"),
    tail: int = typer.Option(100, "--tail", help="显示最近 N 行内容。"),
) -> None:
    base_dir = default_log_dir()
    path = base_dir / "streams" / f"{name}.log" if name else base_dir / "crawler.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("暂无日志信息。", style="dim")
        return
    console.print(f"{'事件流日志' if name else '全局日志'} · 最近 {len(lines)} 行", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()

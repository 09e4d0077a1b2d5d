"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from nekopress.core.config import (
    DEFAULT_DRAIN_INTERVAL,
    DEFAULT_MAX_DIMENSION,
    LEGACY_WEBP_QUALITY,
    CompressionTier,
    OutputFormat,
    PipelineConfig,
    QualityTable,
)
from nekopress.core.exceptions import InvalidConfigurationError
from nekopress.core.models import BatchResult, ErrorEvent, ErrorKind, RunStatus
from nekopress.core.progress import ProgressUpdate
from nekopress.core.scanner import collect_source_entries
from nekopress.processing.pipeline import PipelineController
from nekopress.utils.formatting import format_kb, format_saving
from nekopress.utils.logging import setup_logging

app = typer.Typer(help="批量图片压缩工具：转换为 JPEG / WebP 并实时显示进度。")

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_WITH_ERRORS = 1
EXIT_CANCELLED = 130


def _parse_format(value: str) -> OutputFormat:
    try:
        return OutputFormat.parse(value)
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _parse_tier(value: str) -> CompressionTier:
    try:
        return CompressionTier.parse(value)
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _parse_table(value: Optional[str]) -> Optional[QualityTable]:
    if value is None:
        return None
    if value.strip().lower() == "legacy":
        return LEGACY_WEBP_QUALITY
    try:
        return QualityTable.parse(value)
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _build_progress_callback(progress: Progress, task_id: TaskID):
    def callback(update: ProgressUpdate) -> None:
        progress.update(
            task_id,
            completed=update.completed,
            description=f"压缩图片 {format_kb(update.compressed_total_bytes)}",
        )

    return callback


def _build_error_callback(console: Console):
    def callback(event: ErrorEvent) -> None:
        style = "yellow" if event.kind is ErrorKind.DELETE_FAILED else "red"
        console.print(f"[{style}]{event.kind.value}[/]: {event.message}")

    return callback


def _wait_with_interrupt(controller: PipelineController, console: Console) -> BatchResult:
    """等待运行结束；Ctrl+C 转为协作式取消，在途任务仍会完成。"""

    while True:
        try:
            result = controller.wait(timeout=0.1)
        except KeyboardInterrupt:
            if controller.cancel():
                console.print("[yellow]正在取消，等待进行中的图片完成……[/]")
            continue
        if result is not None:
            return result


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output_format: str = typer.Option("jpeg", "--format", "-f", help="输出格式 jpeg / webp"),
    level: str = typer.Option("medium", "--level", "-l", help="压缩档位 fast / medium / slow"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出目录，默认与源文件同目录"),
    delete_source: bool = typer.Option(False, "--delete-source", help="写入成功后删除源文件"),
    relocate_to: Optional[Path] = typer.Option(
        None, "--relocate-to", help="配合 --delete-source，将源文件移动到此目录而非直接删除"
    ),
    max_dimension: int = typer.Option(DEFAULT_MAX_DIMENSION, "--max-dimension", help="WebP 输出的最长边上限"),
    jpeg_quality: Optional[str] = typer.Option(
        None, "--jpeg-quality", help="JPEG 质量表，形如 fast=0.1,medium=0.3,slow=0.5"
    ),
    webp_quality: Optional[str] = typer.Option(
        None, "--webp-quality", help="WebP 质量表，形如 fast=0.3,medium=0.7,slow=0.95；legacy 使用旧映射"
    ),
    max_workers: Optional[int] = typer.Option(None, "--workers", "-w", help="并发线程数量，默认为 CPU 数的一半"),
    allow_recursive: bool = typer.Option(False, "--recursive/--no-recursive", help="是否递归扫描目录"),
    interval: float = typer.Option(DEFAULT_DRAIN_INTERVAL, "--interval", help="进度刷新间隔（秒）"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行批量压缩。"""

    console = Console(stderr=True)
    setup_logging(logging.DEBUG if verbose else logging.INFO, console=console)
    LOGGER.debug("CLI 参数解析完成")

    config = PipelineConfig(
        output_format=_parse_format(output_format),
        tier=_parse_tier(level),
        output_dir=output.expanduser().resolve() if output else None,
        delete_source=delete_source,
        relocate_to=relocate_to.expanduser().resolve() if relocate_to else None,
        max_dimension=max_dimension,
    )
    jpeg_table = _parse_table(jpeg_quality)
    if jpeg_table is not None:
        config = config.with_quality_table(OutputFormat.JPEG, jpeg_table)
    webp_table = _parse_table(webp_quality)
    if webp_table is not None:
        config = config.with_quality_table(OutputFormat.WEBP, webp_table)

    try:
        config.validate()
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    entries = collect_source_entries(source, recursive=allow_recursive)
    if not entries:
        typer.echo("没有找到可压缩的图片。")
        raise typer.Exit(code=EXIT_OK)

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )

    with progress:
        task_id = progress.add_task("压缩图片", total=len(entries))
        try:
            controller = PipelineController(
                max_workers=max_workers,
                drain_interval=interval,
                on_progress=_build_progress_callback(progress, task_id),
                on_error=_build_error_callback(console),
            )
            started = controller.start(entries, config)
        except InvalidConfigurationError as exc:
            raise typer.BadParameter(str(exc)) from exc
        if not started:
            raise typer.Exit(code=EXIT_OK)
        result = _wait_with_interrupt(controller, console)

    status_text = {RunStatus.CANCELLED: "已取消", RunStatus.FAILED: "运行失败"}.get(result.status, "处理完成")
    typer.echo(
        f"{status_text}：成功 {result.completed} 张，失败 {len(result.failed)} 张，共 {len(result.entries)} 张。"
    )
    typer.echo(
        f"原始 {format_kb(result.original_total_bytes)} -> 压缩后 {format_kb(result.compressed_total_bytes)}，"
        f"{format_saving(result.original_total_bytes, result.compressed_total_bytes)}"
    )

    if result.status is RunStatus.CANCELLED:
        raise typer.Exit(code=EXIT_CANCELLED)
    if result.failed or result.status is RunStatus.FAILED:
        raise typer.Exit(code=EXIT_WITH_ERRORS)


@app.callback()
def main() -> None:
    """NekoPress 批量图片压缩。"""


if __name__ == "__main__":
    app()

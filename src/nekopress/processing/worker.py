"""并发处理的工作单元。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from nekopress.core.config import PipelineConfig
from nekopress.core.exceptions import CodecError, ImageWriteError, SourceCleanupError
from nekopress.core.models import ErrorEvent, ErrorKind, JobOutcome, JobRecord, SourceEntry
from nekopress.core.output_manager import dispose_source, resolve_output_path, write_output
from nekopress.core.result_queue import JobResultQueue
from nekopress.processing.codec import ImageCodec

LOGGER = logging.getLogger(__name__)


ErrorCallback = Optional[Callable[[ErrorEvent], None]]


@dataclass(slots=True)
class CompressionTask:
    """描述单张图片的压缩任务。"""

    index: int
    entry: SourceEntry
    config: PipelineConfig


def run_task(
    task: CompressionTask,
    codec: ImageCodec,
    results: JobResultQueue,
    on_error: ErrorCallback = None,
) -> JobRecord:
    """在工作线程中执行完整的 编码 -> 写入 -> 清理 流程。

    成功时把记录推入结果队列；失败立即通过 on_error 上报，不入队。
    """

    config = task.config
    entry = task.entry
    record = JobRecord(
        index=task.index,
        output_path=resolve_output_path(entry.path, task.index, config.output_format, config.output_dir),
    )

    try:
        data = codec.encode(entry, config.output_format, config.tier)
    except CodecError as exc:
        LOGGER.warning("加载失败 [%d] %s: %s", task.index, entry.path, exc)
        _report(on_error, ErrorEvent(entry.path, ErrorKind.LOAD_FAILED, str(exc), task.index))
        return record.finish(JobOutcome.LOAD_FAILED)

    try:
        written = write_output(data, record.output_path)
    except ImageWriteError as exc:
        LOGGER.warning("写入失败 [%d] %s: %s", task.index, record.output_path, exc.__cause__ or exc)
        _report(on_error, ErrorEvent(entry.path, ErrorKind.WRITE_FAILED, str(exc), task.index))
        return record.finish(JobOutcome.WRITE_FAILED)

    if config.delete_source:
        try:
            moved_to = dispose_source(entry.path, config.relocate_to)
        except SourceCleanupError as exc:
            LOGGER.warning("清理源文件失败 [%d] %s: %s", task.index, entry.path, exc.__cause__ or exc)
            _report(on_error, ErrorEvent(entry.path, ErrorKind.DELETE_FAILED, str(exc), task.index))
        else:
            if moved_to is not None:
                LOGGER.debug("源文件已移动：%s -> %s", entry.path, moved_to)
            else:
                LOGGER.debug("源文件已删除：%s", entry.path)

    record.finish(JobOutcome.SUCCESS, written)
    results.push(record)
    LOGGER.debug("完成 [%d] %s -> %s (%d 字节)", task.index, entry.name, record.output_path.name, written)
    return record


def _report(callback: ErrorCallback, event: ErrorEvent) -> None:
    if callback is None:
        return
    try:
        callback(event)
    except Exception:  # noqa: BLE001
        LOGGER.exception("错误回调执行异常：%s", event.source_path)

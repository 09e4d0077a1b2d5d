"""压缩流水线：统计基准大小、并发压缩、周期汇总与终态上报。"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional

from nekopress.core.config import DEFAULT_DRAIN_INTERVAL, PipelineConfig
from nekopress.core.exceptions import InvalidConfigurationError
from nekopress.core.models import BatchResult, ErrorEvent, ErrorKind, RunState, RunStatus, SourceEntry
from nekopress.core.progress import ProgressUpdate
from nekopress.core.result_queue import JobResultQueue
from nekopress.processing.aggregator import ProgressAggregator, ProgressCallback
from nekopress.processing.codec import ImageCodec, initialize_codecs
from nekopress.processing.scheduler import PoolReport, WorkerPool
from nekopress.processing.worker import CompressionTask, ErrorCallback, run_task

LOGGER = logging.getLogger(__name__)


FinishedCallback = Optional[Callable[[BatchResult], None]]
CodecFactory = Callable[[PipelineConfig], ImageCodec]


class PipelineController:
    """编排一次完整的压缩运行。

    状态：IDLE -> RUNNING -> COMPLETED | CANCELLED；线程池自身异常时为 FAILED。
    所有回调都在流水线线程上执行，需要切换到界面线程时由调用方自行处理。
    """

    def __init__(
        self,
        *,
        max_workers: Optional[int] = None,
        drain_interval: float = DEFAULT_DRAIN_INTERVAL,
        codec_factory: CodecFactory = ImageCodec.from_config,
        on_progress: ProgressCallback = None,
        on_error: ErrorCallback = None,
        on_finished: FinishedCallback = None,
    ) -> None:
        if max_workers is not None and max_workers < 1:
            raise InvalidConfigurationError(f"并发线程数必须至少为 1，当前为 {max_workers}")
        if drain_interval <= 0:
            raise InvalidConfigurationError(f"进度刷新间隔必须大于 0，当前为 {drain_interval}")

        self.available_formats = initialize_codecs()
        self.max_workers = max_workers
        self.drain_interval = drain_interval
        self.codec_factory = codec_factory
        self.on_progress = on_progress
        self.on_error = on_error
        self.on_finished = on_finished

        self._lock = threading.Lock()
        self._state = RunState()
        self._entries: list[SourceEntry] = []
        self._errors: list[ErrorEvent] = []
        self._cancel_event = threading.Event()
        self._done_event = threading.Event()
        self._done_event.set()
        self._result: Optional[BatchResult] = None

    @property
    def status(self) -> RunStatus:
        with self._lock:
            return self._state.status

    @property
    def is_running(self) -> bool:
        return self.status is RunStatus.RUNNING

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._state.cancel_requested

    def snapshot(self) -> ProgressUpdate:
        """返回当前进度的只读快照。"""

        with self._lock:
            return ProgressUpdate.from_state(self._state)

    def start(self, entries: Iterable[SourceEntry], config: PipelineConfig) -> bool:
        """启动一次运行；条目为空或已有运行时不做任何事并返回 False。"""

        entries = list(entries)
        if not entries:
            LOGGER.info("没有需要压缩的图片")
            return False

        config.validate()
        if config.output_format not in self.available_formats:
            raise InvalidConfigurationError(f"当前环境不支持输出 {config.output_format.value}")

        with self._lock:
            if self._state.status is RunStatus.RUNNING:
                LOGGER.warning("已有压缩任务在运行，忽略新的启动请求")
                return False

            original_total = sum(_measure_source(entry) for entry in entries)
            for entry in entries:
                entry.compressed_size = None

            self._state = RunState.begin(len(entries), original_total)
            self._entries = entries
            self._errors = []
            self._result = None
            self._cancel_event = threading.Event()
            self._done_event = threading.Event()

            results = JobResultQueue()
            aggregator = ProgressAggregator(
                results,
                self._state,
                entries,
                state_lock=self._lock,
                interval=self.drain_interval,
                on_progress=self._emit_progress,
            )
            coordinator = threading.Thread(
                target=self._run,
                args=(
                    entries,
                    config,
                    self.codec_factory(config),
                    results,
                    aggregator,
                    self._cancel_event,
                    self._done_event,
                ),
                name="nekopress-pipeline",
                daemon=True,
            )

        LOGGER.info(
            "开始压缩 %d 张图片：格式 %s，档位 %s，原始总大小 %d 字节",
            len(entries),
            config.output_format.value,
            config.tier.value,
            original_total,
        )
        coordinator.start()
        return True

    def cancel(self) -> bool:
        """请求取消：不再启动新任务，在途任务继续完成。仅在运行中有效。"""

        with self._lock:
            if self._state.status is not RunStatus.RUNNING:
                return False
            if self._state.cancel_requested:
                return True
            self._state.cancel_requested = True
            self._cancel_event.set()

        LOGGER.info("已请求取消，等待在途任务结束")
        return True

    def wait(self, timeout: Optional[float] = None) -> Optional[BatchResult]:
        """阻塞到运行结束，超时返回 None。"""

        if not self._done_event.wait(timeout):
            return None
        return self._result

    def run(self, entries: Iterable[SourceEntry], config: PipelineConfig) -> BatchResult:
        """启动并等待运行结束。"""

        entries = list(entries)
        if not self.start(entries, config):
            if not entries:
                return BatchResult(
                    status=RunStatus.IDLE,
                    entries=[],
                    completed=0,
                    original_total_bytes=0,
                    compressed_total_bytes=0,
                    fraction=0.0,
                )
            raise RuntimeError("已有压缩任务在运行")

        result = self.wait()
        assert result is not None
        return result

    def _run(
        self,
        entries: list[SourceEntry],
        config: PipelineConfig,
        codec: ImageCodec,
        results: JobResultQueue,
        aggregator: ProgressAggregator,
        cancel_event: threading.Event,
        done_event: threading.Event,
    ) -> None:
        def job(index: int, entry: SourceEntry) -> None:
            run_task(CompressionTask(index=index, entry=entry, config=config), codec, results, self._handle_error)

        self._emit_progress(self.snapshot())
        report = PoolReport()
        pool_failed = False
        aggregator.start()
        try:
            report = WorkerPool(self.max_workers).run(entries, job, cancel_event)
        except Exception:  # noqa: BLE001
            LOGGER.exception("工作线程池执行异常，运行终止")
            pool_failed = True
            cancel_event.set()
        finally:
            aggregator.stop()
            for index in report.crashed:
                entry = entries[index]
                self._handle_error(ErrorEvent(entry.path, ErrorKind.LOAD_FAILED, f"处理失败: {entry.name}", index))

            with self._lock:
                state = aggregator.state
                state.running = False
                if pool_failed:
                    state.status = RunStatus.FAILED
                elif state.cancel_requested:
                    state.status = RunStatus.CANCELLED
                else:
                    state.status = RunStatus.COMPLETED
                final = ProgressUpdate.from_state(state)
                result = BatchResult(
                    status=state.status,
                    entries=entries,
                    completed=state.completed,
                    original_total_bytes=state.original_total_bytes,
                    compressed_total_bytes=state.compressed_total_bytes,
                    fraction=state.fraction,
                    errors=list(self._errors),
                )
                self._result = result

            LOGGER.info(
                "压缩结束（%s）：完成 %d/%d，失败 %d，未启动 %d",
                final.status.value,
                final.completed,
                final.total,
                len(result.failed),
                len(report.not_started),
            )
            with self._lock:
                superseded = self._done_event is not done_event
            # 新一轮运行已启动时，不再推送上一轮的最终进度。
            if not superseded:
                self._emit_progress(final)
            self._emit_finished(result)
            done_event.set()

    def _handle_error(self, event: ErrorEvent) -> None:
        with self._lock:
            self._errors.append(event)
        if self.on_error is None:
            return
        try:
            self.on_error(event)
        except Exception:  # noqa: BLE001
            LOGGER.exception("错误回调执行异常：%s", event.source_path)

    def _emit_progress(self, update: ProgressUpdate) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(update)
        except Exception:  # noqa: BLE001
            LOGGER.exception("进度回调执行异常")

    def _emit_finished(self, result: BatchResult) -> None:
        if self.on_finished is None:
            return
        try:
            self.on_finished(result)
        except Exception:  # noqa: BLE001
            LOGGER.exception("结束回调执行异常")


def compress_batch(
    entries: Iterable[SourceEntry],
    config: PipelineConfig,
    *,
    progress_callback: ProgressCallback = None,
    error_callback: ErrorCallback = None,
    max_workers: Optional[int] = None,
) -> BatchResult:
    """批量压缩入口：阻塞执行一次完整运行并返回结果。"""

    controller = PipelineController(
        max_workers=max_workers,
        on_progress=progress_callback,
        on_error=error_callback,
    )
    return controller.run(entries, config)


def _measure_source(entry: SourceEntry) -> int:
    """读取源文件当前大小，无法读取时计为 0。"""

    try:
        size = entry.path.stat().st_size
    except OSError:
        LOGGER.debug("无法读取文件大小：%s", entry.path)
        return 0
    entry.original_size = size
    return size

"""周期性汇总结果队列并刷新运行状态。"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Sequence

from nekopress.core.config import DEFAULT_DRAIN_INTERVAL
from nekopress.core.models import RunState, SourceEntry
from nekopress.core.progress import ProgressUpdate
from nekopress.core.result_queue import JobResultQueue

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


class ProgressAggregator:
    """按固定节奏取出结果队列中的记录并更新 RunState。

    ``tick`` 受锁保护，周期线程与最终汇总不会重叠执行；慢的一次只会推迟下一次。
    """

    def __init__(
        self,
        results: JobResultQueue,
        state: RunState,
        entries: Sequence[SourceEntry],
        *,
        state_lock: Optional[threading.Lock] = None,
        interval: float = DEFAULT_DRAIN_INTERVAL,
        on_progress: ProgressCallback = None,
    ) -> None:
        self.results = results
        self.state = state
        self.entries = entries
        self.interval = interval
        self.on_progress = on_progress
        self._state_lock = state_lock or threading.Lock()
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("ProgressAggregator 已启动")
        self._thread = threading.Thread(target=self._loop, name="nekopress-aggregator", daemon=True)
        self._thread.start()

    def stop(self) -> int:
        """停止周期汇总并执行最后一次取出，返回最后一次处理的记录数。"""

        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
        return self.tick()

    def tick(self) -> int:
        """取出并应用一批记录，返回本批记录数。"""

        with self._tick_lock:
            records = self.results.drain_all()
            if not records:
                return 0

            with self._state_lock:
                for record in records:
                    self.state.apply(record)
                    self.entries[record.index].compressed_size = record.compressed_size
                self.state.recompute_fraction()
                update = ProgressUpdate.from_state(self.state)

            LOGGER.debug("汇总 %d 条记录，进度 %.1f%%", len(records), update.fraction * 100)
            self._emit(update)
            return len(records)

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                LOGGER.exception("进度汇总异常")

    def _emit(self, update: ProgressUpdate) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(update)
        except Exception:  # noqa: BLE001
            LOGGER.exception("进度回调执行异常")

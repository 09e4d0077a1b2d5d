"""有界并发的工作线程池。"""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def default_concurrency(cpu_count: Optional[int] = None) -> int:
    """并发上限：逻辑处理器数量的一半，至少为 1。"""

    count = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return max(1, count // 2)


@dataclass(slots=True)
class PoolReport:
    """线程池排空后的执行情况。"""

    started: list[int] = field(default_factory=list)
    not_started: list[int] = field(default_factory=list)
    crashed: list[int] = field(default_factory=list)
    cancelled: bool = False


class WorkerPool:
    """按需提交任务，保证同时在途的任务数不超过上限。

    每个任务最多启动一次；取消只阻止新任务启动，已在运行的任务会自然结束。
    """

    def __init__(self, max_workers: Optional[int] = None, *, thread_name_prefix: str = "nekopress-worker") -> None:
        self.max_workers = max_workers if max_workers is not None else default_concurrency()
        if self.max_workers < 1:
            raise ValueError(f"max_workers 必须至少为 1，当前为 {self.max_workers}")
        self.thread_name_prefix = thread_name_prefix

    def run(
        self,
        items: Sequence[T],
        fn: Callable[[int, T], object],
        cancel_event: Optional[threading.Event] = None,
    ) -> PoolReport:
        """依次对 items 执行 fn(index, item)，所有已启动任务结束后才返回。"""

        cancel_event = cancel_event or threading.Event()
        report = PoolReport()
        pending = deque(enumerate(items))
        in_flight: dict[Future, int] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=self.thread_name_prefix) as executor:

            def fill_slots() -> None:
                while pending and len(in_flight) < self.max_workers:
                    if cancel_event.is_set():
                        return
                    index, item = pending.popleft()
                    in_flight[executor.submit(fn, index, item)] = index
                    report.started.append(index)

            fill_slots()
            while in_flight:
                done, _ = wait(set(in_flight), return_when=FIRST_COMPLETED)
                for future in done:
                    index = in_flight.pop(future)
                    exc = future.exception()
                    if exc is not None:
                        LOGGER.error("任务 %d 执行异常", index, exc_info=exc)
                        report.crashed.append(index)
                fill_slots()

        report.not_started = [index for index, _ in pending]
        report.cancelled = cancel_event.is_set()
        if report.not_started:
            LOGGER.info("已取消，%d 个任务未启动", len(report.not_started))
        return report

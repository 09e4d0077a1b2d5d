"""工作线程与进度汇总之间的结果队列。"""

from __future__ import annotations

import threading

from nekopress.core.models import JobRecord


class JobResultQueue:
    """多生产者、单消费者的结果缓冲区。

    ``push`` 与 ``drain_all`` 共用一把锁，临界区只做列表追加或交换，
    因此与取出操作竞争的写入要么完整落在本批，要么完整落在下一批。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: list[JobRecord] = []

    def push(self, record: JobRecord) -> None:
        with self._lock:
            self._pending.append(record)

    def drain_all(self) -> list[JobRecord]:
        """原子地取出并清空当前全部记录。"""

        with self._lock:
            drained, self._pending = self._pending, []
        return drained

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

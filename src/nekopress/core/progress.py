"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from nekopress.core.models import RunState, RunStatus


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """压缩过程中推送给外部的进度快照。"""

    total: int
    completed: int
    fraction: float
    original_total_bytes: int
    compressed_total_bytes: int
    entry_compressed_bytes: tuple[Optional[int], ...]
    status: RunStatus = RunStatus.RUNNING
    message: Optional[str] = None

    @classmethod
    def from_state(cls, state: RunState, message: Optional[str] = None) -> "ProgressUpdate":
        return cls(
            total=state.total_entries,
            completed=state.completed,
            fraction=state.fraction,
            original_total_bytes=state.original_total_bytes,
            compressed_total_bytes=state.compressed_total_bytes,
            entry_compressed_bytes=tuple(state.entry_compressed_bytes),
            status=state.status,
            message=message,
        )

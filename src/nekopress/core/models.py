"""核心数据模型定义。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from PIL import Image

LOGGER = logging.getLogger(__name__)

PREVIEW_SIZE = (256, 256)


class JobOutcome(str, Enum):
    SUCCESS = "success"
    LOAD_FAILED = "load-failed"
    WRITE_FAILED = "write-failed"


class ErrorKind(str, Enum):
    LOAD_FAILED = "load-failed"
    WRITE_FAILED = "write-failed"
    DELETE_FAILED = "delete-failed"


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.CANCELLED, RunStatus.FAILED)


@dataclass(slots=True, eq=False)
class SourceEntry:
    """用户提交的一张待压缩图片。

    ``path`` 在创建后不再改变；``compressed_size`` 仅在该任务的结果被汇总时写入一次。
    """

    path: Path
    preview: Optional["Image.Image"] = None
    original_size: Optional[int] = None
    compressed_size: Optional[int] = None

    @classmethod
    def from_path(cls, path: Path, *, load_preview: bool = False) -> "SourceEntry":
        """读取文件大小（以及可选的缩略图）构建条目。"""

        try:
            size: Optional[int] = path.stat().st_size
        except OSError:
            size = None

        preview = _load_preview(path) if load_preview else None
        return cls(path=path, preview=preview, original_size=size)

    @property
    def name(self) -> str:
        return self.path.name


def _load_preview(path: Path) -> Optional["Image.Image"]:
    from PIL import Image

    try:
        with Image.open(path) as img:
            img.thumbnail(PREVIEW_SIZE)
            return img.copy()
    except OSError as exc:
        LOGGER.debug("无法生成预览 %s: %s", path, exc)
        return None


@dataclass(slots=True)
class JobRecord:
    """单个压缩任务的结果记录。"""

    index: int
    output_path: Path
    compressed_size: int = 0
    outcome: Optional[JobOutcome] = None

    def finish(self, outcome: JobOutcome, compressed_size: int = 0) -> "JobRecord":
        """设置终态，只允许调用一次。"""

        if self.outcome is not None:
            raise RuntimeError(f"任务 {self.index} 的结果已确定为 {self.outcome.value}")
        self.outcome = outcome
        self.compressed_size = compressed_size
        return self


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """单张图片的非致命错误。"""

    source_path: Path
    kind: ErrorKind
    message: str
    index: Optional[int] = None


@dataclass(slots=True)
class RunState:
    """一次运行的可变汇总状态，由 PipelineController 独占。"""

    total_entries: int = 0
    original_total_bytes: int = 0
    compressed_total_bytes: int = 0
    completed: int = 0
    fraction: float = 0.0
    entry_compressed_bytes: list[Optional[int]] = field(default_factory=list)
    cancel_requested: bool = False
    running: bool = False
    status: RunStatus = RunStatus.IDLE

    @classmethod
    def begin(cls, total_entries: int, original_total_bytes: int) -> "RunState":
        return cls(
            total_entries=total_entries,
            original_total_bytes=original_total_bytes,
            entry_compressed_bytes=[None] * total_entries,
            running=True,
            status=RunStatus.RUNNING,
        )

    def apply(self, record: JobRecord) -> None:
        """把一条成功记录计入汇总。"""

        self.completed += 1
        self.compressed_total_bytes += record.compressed_size
        self.entry_compressed_bytes[record.index] = record.compressed_size

    def recompute_fraction(self) -> None:
        if self.total_entries <= 0:
            return
        fraction = min(1.0, self.completed / self.total_entries)
        # 进度在一次运行内只增不减。
        self.fraction = max(self.fraction, fraction)


@dataclass(slots=True)
class BatchResult:
    """一次运行结束后的产出。"""

    status: RunStatus
    entries: list[SourceEntry]
    completed: int
    original_total_bytes: int
    compressed_total_bytes: int
    fraction: float
    errors: list[ErrorEvent] = field(default_factory=list)

    @property
    def saved_bytes(self) -> int:
        return self.original_total_bytes - self.compressed_total_bytes

    @property
    def saved_percent(self) -> float:
        if self.original_total_bytes <= 0:
            return 0.0
        return self.saved_bytes / self.original_total_bytes * 100.0

    @property
    def failed(self) -> list[ErrorEvent]:
        """导致任务失败的错误（不含删除源文件失败的警告）。"""

        return [event for event in self.errors if event.kind is not ErrorKind.DELETE_FAILED]

"""输出路径决策、写入与源文件清理。"""

from __future__ import annotations

import logging
import shutil
from itertools import count
from pathlib import Path
from typing import Optional

from nekopress.core.config import OutputFormat
from nekopress.core.exceptions import ImageWriteError, SourceCleanupError

LOGGER = logging.getLogger(__name__)

OUTPUT_SUFFIX = "_compressed"


def resolve_output_path(
    source_path: Path,
    index: int,
    output_format: OutputFormat,
    output_dir: Optional[Path] = None,
) -> Path:
    """计算输出文件路径：``<目录>/<文件名>_compressed.<扩展名>``。

    源文件已不存在时无法确定原始文件名，改用 ``image_<index>``。
    """

    base_dir = output_dir if output_dir is not None else source_path.parent
    if source_path.exists():
        base_name = source_path.stem
    else:
        base_name = f"image_{index}"
    return base_dir / f"{base_name}{OUTPUT_SUFFIX}.{output_format.extension}"


def write_output(data: bytes, destination: Path) -> int:
    """将编码后的字节写入磁盘，返回写入的字节数。"""

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("wb") as handle:
            handle.write(data)
    except OSError as exc:
        raise ImageWriteError(f"无法写入文件: {destination.name}") from exc
    return len(data)


def dispose_source(source_path: Path, relocate_to: Optional[Path] = None) -> Optional[Path]:
    """删除源文件，或在提供 relocate_to 时将其移动过去。

    返回移动后的新路径；直接删除时返回 None。
    """

    try:
        if relocate_to is None:
            source_path.unlink()
            return None

        relocate_to.mkdir(parents=True, exist_ok=True)
        destination = _unique_path(relocate_to / source_path.name)
        shutil.move(str(source_path), str(destination))
        return destination
    except OSError as exc:
        raise SourceCleanupError(f"无法删除源文件: {source_path.name}") from exc


def _unique_path(destination: Path) -> Path:
    """目标已存在时追加序号，避免覆盖之前移动过去的文件。"""

    if not destination.exists():
        return destination

    stem = destination.stem
    suffix = destination.suffix
    for idx in count(1):
        candidate = destination.with_name(f"{stem}_{idx}{suffix}")
        if not candidate.exists():
            return candidate

    return destination

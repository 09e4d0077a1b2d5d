"""把命令行给出的文件/目录展开为待压缩条目。"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

from nekopress.core.models import SourceEntry

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".webp", ".tif", ".tiff"}


def _iter_candidate_files(path: Path, recursive: bool) -> Iterator[Path]:
    """遍历路径下的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        return

    iterator = path.rglob("*") if recursive else path.glob("*")
    for candidate in iterator:
        if candidate.is_file():
            yield candidate


def collect_source_entries(
    sources: Iterable[Path],
    *,
    recursive: bool = False,
    load_preview: bool = False,
) -> list[SourceEntry]:
    """扫描源路径，返回扩展名受支持的图片条目（去重、按路径排序）。"""

    seen_paths: set[Path] = set()
    collected: list[Path] = []

    for root in sources:
        resolved_root = root.expanduser().resolve()
        for candidate in _iter_candidate_files(resolved_root, recursive):
            if candidate in seen_paths:
                continue
            seen_paths.add(candidate)

            if candidate.suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            collected.append(candidate)

    collected.sort(key=lambda p: str(p).lower())
    return [SourceEntry.from_path(path, load_preview=load_preview) for path in collected]

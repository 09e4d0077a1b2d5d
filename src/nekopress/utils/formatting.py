"""大小显示工具函数。"""

from __future__ import annotations

from typing import Optional


def format_kb(size: Optional[int]) -> str:
    """以 ``12.3 KB`` 的形式显示字节数，未知大小显示为 ``-``。"""

    if size is None:
        return "-"
    return f"{size / 1024.0:.1f} KB"


def format_saving(original: int, compressed: int) -> str:
    """返回节省空间的摘要，例如 ``节省 12.3 KB (45.6%)``。"""

    saved = original - compressed
    percent = saved / original * 100.0 if original > 0 else 0.0
    return f"节省 {format_kb(saved)} ({percent:.1f}%)"

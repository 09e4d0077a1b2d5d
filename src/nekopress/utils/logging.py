"""日志初始化。"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s [%(threadName)s] %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int = logging.INFO, console: Optional[Console] = None) -> None:
    """初始化项目日志配置。

    传入 console 时通过 RichHandler 输出，避免打断同一 console 上的进度条。
    """

    if console is None:
        logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
        return

    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    logging.basicConfig(
        level=level,
        format="[%(threadName)s] %(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )

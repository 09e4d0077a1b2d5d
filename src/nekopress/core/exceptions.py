"""项目内使用的自定义异常定义。"""

from __future__ import annotations

from pathlib import Path


class NekoPressError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(NekoPressError):
    """配置不合法时抛出。"""


class CodecError(NekoPressError):
    """编解码失败，携带出错的源文件路径。"""

    def __init__(self, message: str, source_path: Path) -> None:
        super().__init__(message)
        self.source_path = source_path


class ImageLoadingError(CodecError):
    """源图片缺失、不可读或已损坏。"""


class ImageEncodingError(CodecError):
    """解码成功但编码器未能产出数据。"""


class ImageWriteError(NekoPressError):
    """输出写入失败。"""


class SourceCleanupError(NekoPressError):
    """写入成功后删除或移动源文件失败。"""

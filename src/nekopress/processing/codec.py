"""JPEG / WebP 编码实现。"""

from __future__ import annotations

import io
import logging
from typing import Mapping, Optional

from PIL import Image, features

from nekopress.core.config import (
    DEFAULT_MAX_DIMENSION,
    CompressionTier,
    OutputFormat,
    PipelineConfig,
    QualityTable,
    default_quality_tables,
)
from nekopress.core.exceptions import ImageEncodingError, InvalidConfigurationError
from nekopress.core.models import SourceEntry
from nekopress.processing.image_loader import load_image

LOGGER = logging.getLogger(__name__)

# Pillow 的 WebP method 取值 0~6，越小越快。
WEBP_METHOD = 1


def initialize_codecs() -> set[OutputFormat]:
    """注册 Pillow 插件并返回当前环境可用的输出格式，进程启动时调用一次即可。"""

    Image.init()
    available = {OutputFormat.JPEG}
    if features.check("webp"):
        available.add(OutputFormat.WEBP)
    else:
        LOGGER.warning("当前 Pillow 未编译 WebP 支持，WebP 输出不可用")
    LOGGER.debug("可用输出格式: %s", ", ".join(sorted(fmt.value for fmt in available)))
    return available


def compute_downscale_size(size: tuple[int, int], max_dimension: int) -> tuple[int, int]:
    """等比缩小到两边都不超过 max_dimension，从不放大。"""

    width, height = size
    if width <= 0 or height <= 0:
        return size

    ratio = min(max_dimension / width, max_dimension / height, 1.0)
    if ratio >= 1.0:
        return size

    new_width = max(1, min(max_dimension, int(round(width * ratio))))
    new_height = max(1, min(max_dimension, int(round(height * ratio))))
    return new_width, new_height


class ImageCodec:
    """把源图片编码为目标格式的字节串。

    每次调用独立解码出自己的 Image 对象，不共享可变状态，可在多个工作线程中并发使用。
    """

    def __init__(
        self,
        quality_tables: Optional[Mapping[OutputFormat, QualityTable]] = None,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
    ) -> None:
        self.quality_tables = dict(quality_tables or default_quality_tables())
        self.max_dimension = max_dimension

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "ImageCodec":
        return cls(config.quality_tables, config.max_dimension)

    def encode(self, source: SourceEntry, output_format: OutputFormat, tier: CompressionTier) -> bytes:
        """解码源图片并编码为 output_format，失败时抛出 CodecError。"""

        table = self.quality_tables.get(output_format)
        if table is None:
            raise InvalidConfigurationError(f"缺少 {output_format.value} 的质量表")
        quality = table.quality_for(tier)

        image = load_image(source.path, keep_alpha=output_format is OutputFormat.WEBP)
        try:
            if output_format is OutputFormat.WEBP:
                image = self._downscale(image)
                return self._save(image, source, output_format, quality=quality, method=WEBP_METHOD)
            return self._save(image, source, output_format, quality=quality, optimize=True)
        finally:
            image.close()

    def _downscale(self, image: Image.Image) -> Image.Image:
        target = compute_downscale_size(image.size, self.max_dimension)
        if target == image.size:
            return image
        LOGGER.debug("缩小 %sx%s -> %sx%s", image.width, image.height, *target)
        resized = image.resize(target, Image.LANCZOS)
        image.close()
        return resized

    @staticmethod
    def _save(image: Image.Image, source: SourceEntry, output_format: OutputFormat, **params) -> bytes:
        buffer = io.BytesIO()
        try:
            image.save(buffer, format=output_format.pillow_format, **params)
        except (OSError, KeyError, ValueError) as exc:
            raise ImageEncodingError(f"无法编码为 {output_format.value}: {source.name}", source.path) from exc
        return buffer.getvalue()

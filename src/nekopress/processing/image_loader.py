"""图片加载与基础预处理实现。"""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from nekopress.core.exceptions import ImageLoadingError

LOGGER = logging.getLogger(__name__)

ALPHA_MODES = {"RGBA", "LA", "PA"}


def load_image(path: Path, *, keep_alpha: bool = False) -> Image.Image:
    """加载单张图片并执行 EXIF 旋转与模式归一化。

    ``keep_alpha`` 为真时带透明通道的图片转换为 RGBA，否则与白色背景合成为 RGB。
    返回值为新的 Image 对象，调用者负责关闭。
    """

    try:
        with Image.open(path) as img:
            img.load()

            # EXIF Orientation 校正
            img = ImageOps.exif_transpose(img)

            if img.mode == "P" and "transparency" in img.info:
                img = img.convert("RGBA")

            if keep_alpha and img.mode in ALPHA_MODES:
                if img.mode != "RGBA":
                    img = img.convert("RGBA")
            elif img.mode != "RGB":
                img = _convert_to_rgb(img)

            return img.copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        LOGGER.debug("无法识别图像文件 %s: %s", path, exc)
        raise ImageLoadingError(f"无法加载图像: {path.name}", path) from exc


def _convert_to_rgb(img: Image.Image) -> Image.Image:
    """将任意模式图像转换为 RGB。"""

    if img.mode in ALPHA_MODES:
        # 丢弃 Alpha 信息，通过白色背景混合生成 RGB。
        rgba = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background

    return img.convert("RGB")

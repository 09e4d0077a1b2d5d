"""环节一：编码器、缩放与质量表测试。"""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image, features

from nekopress.core.config import CompressionTier, OutputFormat, PipelineConfig, QualityTable
from nekopress.core.exceptions import ImageLoadingError, InvalidConfigurationError
from nekopress.core.models import SourceEntry
from nekopress.processing.codec import ImageCodec, compute_downscale_size, initialize_codecs

requires_webp = pytest.mark.skipif(not features.check("webp"), reason="当前 Pillow 未编译 WebP 支持")


def _save(path: Path, size: tuple[int, int], color: str = "teal", mode: str = "RGB") -> SourceEntry:
    Image.new(mode, size, color).save(path)
    return SourceEntry.from_path(path)


def _noise_entry(path: Path) -> SourceEntry:
    noise = Image.effect_noise((128, 128), 64).convert("RGB")
    noise.save(path)
    return SourceEntry.from_path(path)


def test_jpeg_encode_keeps_native_resolution(tmp_path: Path) -> None:
    entry = _save(tmp_path / "photo.png", (120, 80))

    data = ImageCodec().encode(entry, OutputFormat.JPEG, CompressionTier.MEDIUM)

    assert data[:2] == b"\xff\xd8"
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "JPEG"
        assert img.size == (120, 80)
        assert img.mode == "RGB"


def test_jpeg_encode_flattens_alpha(tmp_path: Path) -> None:
    entry = _save(tmp_path / "alpha.png", (32, 32), color=(255, 0, 0, 128), mode="RGBA")

    data = ImageCodec().encode(entry, OutputFormat.JPEG, CompressionTier.SLOW)

    with Image.open(io.BytesIO(data)) as img:
        assert img.mode == "RGB"


def test_higher_tier_produces_larger_jpeg(tmp_path: Path) -> None:
    entry = _noise_entry(tmp_path / "noise.png")
    codec = ImageCodec()

    fast = codec.encode(entry, OutputFormat.JPEG, CompressionTier.FAST)
    slow = codec.encode(entry, OutputFormat.JPEG, CompressionTier.SLOW)

    assert len(fast) < len(slow)


@requires_webp
def test_webp_encode_downscales_long_edge(tmp_path: Path) -> None:
    entry = _save(tmp_path / "wide.png", (3000, 1500))

    data = ImageCodec().encode(entry, OutputFormat.WEBP, CompressionTier.MEDIUM)

    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "WEBP"
        assert img.size == (2048, 1024)


@requires_webp
def test_webp_encode_never_upscales(tmp_path: Path) -> None:
    entry = _save(tmp_path / "small.png", (100, 50))

    data = ImageCodec(max_dimension=64).encode(entry, OutputFormat.WEBP, CompressionTier.FAST)

    with Image.open(io.BytesIO(data)) as img:
        assert img.size == (64, 32)

    data = ImageCodec().encode(entry, OutputFormat.WEBP, CompressionTier.FAST)
    with Image.open(io.BytesIO(data)) as img:
        assert img.size == (100, 50)


@pytest.mark.parametrize(
    "size",
    [(1, 1), (2048, 2048), (2049, 2048), (4096, 10), (10, 4096), (3000, 1500), (1999, 3001), (5000, 5000)],
)
def test_compute_downscale_size_bounds_and_aspect(size: tuple[int, int]) -> None:
    max_dimension = 2048
    width, height = size

    new_width, new_height = compute_downscale_size(size, max_dimension)

    assert new_width <= max_dimension and new_height <= max_dimension
    assert new_width <= width and new_height <= height
    ratio = min(max_dimension / width, max_dimension / height, 1.0)
    assert abs(new_width - width * ratio) <= 1
    assert abs(new_height - height * ratio) <= 1


def test_missing_source_raises_load_error(tmp_path: Path) -> None:
    missing = tmp_path / "gone.png"
    entry = SourceEntry(path=missing)

    with pytest.raises(ImageLoadingError) as excinfo:
        ImageCodec().encode(entry, OutputFormat.JPEG, CompressionTier.MEDIUM)

    assert excinfo.value.source_path == missing


def test_corrupt_source_raises_load_error(tmp_path: Path) -> None:
    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"definitely not a jpeg")

    with pytest.raises(ImageLoadingError):
        ImageCodec().encode(SourceEntry.from_path(broken), OutputFormat.JPEG, CompressionTier.FAST)


def test_codec_uses_config_quality_tables() -> None:
    table = QualityTable(fast=0.2, medium=0.5, slow=0.8)
    config = PipelineConfig().with_quality_table(OutputFormat.WEBP, table)

    codec = ImageCodec.from_config(config)

    assert codec.quality_tables[OutputFormat.WEBP] is table
    assert codec.quality_tables[OutputFormat.JPEG].quality_for(CompressionTier.FAST) == 10


def test_quality_table_parse_and_validate() -> None:
    table = QualityTable.parse("fast=0.3, medium=0.7, slow=0.95")

    assert table.quality_for(CompressionTier.FAST) == 30
    assert table.quality_for(CompressionTier.SLOW) == 95

    with pytest.raises(InvalidConfigurationError):
        QualityTable.parse("fast=0.3,medium=0.7")
    with pytest.raises(InvalidConfigurationError):
        QualityTable.parse("fast=0.3,medium=1.7,slow=0.9")
    with pytest.raises(InvalidConfigurationError):
        QualityTable.parse("fast:0.3")


def test_initialize_codecs_always_offers_jpeg() -> None:
    available = initialize_codecs()

    assert OutputFormat.JPEG in available
    assert (OutputFormat.WEBP in available) == features.check("webp")

"""环节四：源文件扫描、输出路径与源文件清理测试。"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from nekopress.core.config import OutputFormat, PipelineConfig
from nekopress.core.exceptions import ImageWriteError, InvalidConfigurationError, SourceCleanupError
from nekopress.core.output_manager import dispose_source, resolve_output_path, write_output
from nekopress.core.scanner import collect_source_entries
from nekopress.utils.formatting import format_kb, format_saving


def test_collect_source_entries_filters_and_sorts(tmp_path: Path) -> None:
    source = tmp_path / "input"
    nested = source / "nested"
    nested.mkdir(parents=True)

    Image.new("RGB", (8, 8), "red").save(source / "b.png")
    Image.new("RGB", (8, 8), "red").save(source / "A.JPG")
    Image.new("RGB", (8, 8), "red").save(nested / "c.bmp")
    (source / "notes.txt").write_text("hello")

    flat = collect_source_entries([source])
    deep = collect_source_entries([source, source / "b.png"], recursive=True)

    assert [entry.name for entry in flat] == ["A.JPG", "b.png"]
    assert [entry.name for entry in deep] == ["A.JPG", "b.png", "c.bmp"]
    assert all(entry.original_size and entry.original_size > 0 for entry in deep)
    assert all(entry.preview is None for entry in deep)


def test_collect_source_entries_can_load_preview(tmp_path: Path) -> None:
    Image.new("RGB", (1024, 512), "blue").save(tmp_path / "big.png")

    (entry,) = collect_source_entries([tmp_path / "big.png"], load_preview=True)

    assert entry.preview is not None
    assert max(entry.preview.size) <= 256


def test_resolve_output_path_naming(tmp_path: Path) -> None:
    source = tmp_path / "holiday.photo.png"
    source.write_bytes(b"x")

    assert resolve_output_path(source, 0, OutputFormat.JPEG) == tmp_path / "holiday.photo_compressed.jpeg"
    assert resolve_output_path(source, 0, OutputFormat.WEBP, tmp_path / "out") == (
        tmp_path / "out" / "holiday.photo_compressed.webp"
    )


def test_resolve_output_path_falls_back_to_index_for_missing_source(tmp_path: Path) -> None:
    missing = tmp_path / "vanished.png"

    assert resolve_output_path(missing, 7, OutputFormat.JPEG) == tmp_path / "image_7_compressed.jpeg"


def test_write_output_creates_parent_and_reports_failures(tmp_path: Path) -> None:
    destination = tmp_path / "a" / "b" / "out.jpeg"

    assert write_output(b"12345", destination) == 5
    assert destination.read_bytes() == b"12345"

    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(ImageWriteError):
        write_output(b"1", blocker / "out.jpeg")


def test_dispose_source_delete_and_relocate(tmp_path: Path) -> None:
    first = tmp_path / "first.png"
    first.write_bytes(b"1")
    assert dispose_source(first) is None
    assert not first.exists()

    trash = tmp_path / "trash"
    (trash).mkdir()
    (trash / "second.png").write_bytes(b"old")
    second = tmp_path / "second.png"
    second.write_bytes(b"new")

    moved = dispose_source(second, trash)

    assert moved == trash / "second_1.png"
    assert moved.read_bytes() == b"new"
    assert (trash / "second.png").read_bytes() == b"old"

    with pytest.raises(SourceCleanupError):
        dispose_source(tmp_path / "missing.png")


def test_pipeline_config_validation(tmp_path: Path) -> None:
    PipelineConfig().validate()
    PipelineConfig(delete_source=True, relocate_to=tmp_path).validate()

    with pytest.raises(InvalidConfigurationError):
        PipelineConfig(max_dimension=0).validate()
    with pytest.raises(InvalidConfigurationError):
        PipelineConfig(relocate_to=tmp_path).validate()
    with pytest.raises(InvalidConfigurationError):
        OutputFormat.parse("gif")

    assert OutputFormat.parse("jpg") is OutputFormat.JPEG
    assert OutputFormat.parse("WEBP") is OutputFormat.WEBP
    assert OutputFormat.WEBP.extension == "webp"


def test_size_formatting() -> None:
    assert format_kb(None) == "-"
    assert format_kb(2048) == "2.0 KB"
    assert format_saving(4096, 1024) == "节省 3.0 KB (75.0%)"
    assert format_saving(0, 0) == "节省 0.0 KB (0.0%)"

"""环节五：命令行入口测试。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest
from PIL import Image
from typer.testing import CliRunner

from nekopress.cli.main import EXIT_WITH_ERRORS, app

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _make_images(folder: Path, count: int) -> None:
    folder.mkdir(parents=True, exist_ok=True)
    for idx in range(count):
        Image.new("RGB", (16, 16), (idx * 40, 0, 0)).save(folder / f"img{idx}.png")


def test_cli_compresses_folder_into_output_dir(tmp_path: Path) -> None:
    source = tmp_path / "input"
    output = tmp_path / "output"
    _make_images(source, 3)

    result = runner.invoke(app, ["run", str(source), "--output", str(output), "--level", "fast", "-w", "2"])

    assert result.exit_code == 0, result.output
    assert sorted(p.name for p in output.iterdir()) == [
        "img0_compressed.jpeg",
        "img1_compressed.jpeg",
        "img2_compressed.jpeg",
    ]


def test_cli_reports_failures_with_exit_code(tmp_path: Path) -> None:
    source = tmp_path / "input"
    _make_images(source, 1)
    (source / "broken.png").write_text("not an image")

    result = runner.invoke(app, ["run", str(source)])

    assert result.exit_code == EXIT_WITH_ERRORS
    assert (source / "img0_compressed.jpeg").exists()


def test_cli_rejects_unknown_format(tmp_path: Path) -> None:
    _make_images(tmp_path, 1)

    result = runner.invoke(app, ["run", str(tmp_path), "--format", "gif"])

    assert result.exit_code != 0
    assert not list(tmp_path.glob("*_compressed.*"))


def test_cli_rejects_relocate_without_delete(tmp_path: Path) -> None:
    _make_images(tmp_path, 1)

    result = runner.invoke(app, ["run", str(tmp_path), "--relocate-to", str(tmp_path / "trash")])

    assert result.exit_code != 0


@pytest.mark.parametrize("args", [["-w", "0"], ["--workers=-2"], ["--interval", "0"]])
def test_cli_rejects_invalid_runtime_options(tmp_path: Path, args: list[str]) -> None:
    _make_images(tmp_path, 2)

    result = runner.invoke(app, ["run", str(tmp_path), *args])

    assert result.exit_code != 0
    assert "处理完成" not in result.output
    assert not list(tmp_path.glob("*_compressed.*"))


def test_cli_with_no_images_exits_cleanly(tmp_path: Path) -> None:
    (tmp_path / "readme.txt").write_text("nothing here")

    result = runner.invoke(app, ["run", str(tmp_path)])

    assert result.exit_code == 0

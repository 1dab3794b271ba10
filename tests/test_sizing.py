from __future__ import annotations

import math
import os
from dataclasses import replace
from pathlib import Path

import pytest
from PIL import Image

from pipeline.acquire import AcquiredImage
from pipeline.config import PIXEL_BUDGET
from pipeline.sizing import SizeGuard, scaled_size


def acquired(tmp_path, size, fmt="PNG"):
    path = str(tmp_path / "source.png")
    Image.new("RGB", size, (10, 120, 200)).save(path, format=fmt)
    return AcquiredImage(
        url="https://example.com/a.png",
        path=path,
        size_bytes=os.path.getsize(path),
        format=fmt,
        width=size[0],
        height=size[1],
    )


@pytest.mark.parametrize(
    "width,height",
    [(10_000, 10_000), (12_345, 6_789), (75_000_001, 1), (9_000, 8_334), (40_000, 2_000), (3, 30_000_000)],
)
def test_scaled_size_fits_budget_and_keeps_aspect(width, height):
    new_w, new_h = scaled_size(width, height, PIXEL_BUDGET)
    assert new_w * new_h <= PIXEL_BUDGET

    scale = math.sqrt(PIXEL_BUDGET / (width * height))
    assert abs(new_w - width * scale) < 2
    assert abs(new_h - height * scale) < 2 or new_h == 1


def test_scaled_size_within_budget_unchanged():
    assert scaled_size(5000, 5000, PIXEL_BUDGET) == (5000, 5000)


def test_small_image_passes_through(tmp_path):
    image = acquired(tmp_path, (300, 200))
    with SizeGuard().constrain(image) as working:
        assert working.path == image.path
        assert (working.width, working.height, working.scaled) == (300, 200, False)


def test_large_image_is_downsampled_to_temp_copy(tmp_path):
    image = acquired(tmp_path, (400, 200))
    original_bytes = Path(image.path).read_bytes()

    with SizeGuard(budget=20_000).constrain(image) as working:
        assert working.scaled
        assert (working.width, working.height) == (200, 100)
        assert working.path != image.path
        with Image.open(working.path) as img:
            assert img.size == (200, 100)
        resized_path = working.path

    assert not os.path.exists(resized_path)
    assert Path(image.path).read_bytes() == original_bytes


def test_resize_failure_falls_back_to_original(tmp_path):
    image = acquired(tmp_path, (400, 200))
    broken = replace(image, path=str(tmp_path / "missing.png"))

    with SizeGuard(budget=20_000).constrain(broken) as working:
        assert not working.scaled
        assert working.path == broken.path
        assert (working.width, working.height) == (400, 200)


@pytest.mark.parametrize("mode,fmt", [("1", "PNG"), ("RGB", "JPEG"), ("P", "GIF")])
def test_image_past_decoder_pixel_ceiling_is_downsampled(tmp_path, monkeypatch, mode, fmt):
    path = str(tmp_path / f"huge.{fmt.lower()}")
    Image.new(mode, (1200, 800)).save(path, format=fmt)
    image = AcquiredImage("https://example.com/huge", path, os.path.getsize(path), fmt, 1200, 800)
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 400_000)

    with SizeGuard(budget=60_000).constrain(image) as working:
        assert working.scaled
        assert working.width * working.height <= 60_000
        with Image.open(working.path) as img:
            assert img.mode == "RGB"
            assert img.size == (working.width, working.height)

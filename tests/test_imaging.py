import os

import pytest
from PIL import Image

from adscraper.geometry import Box
from adscraper.imaging import WEBP_MAX_DIMENSION, crop_and_save, encode_lossless, remove_dir_if_empty, save_screenshot

from fakes import png_bytes


def test_crop_is_saved_as_lossless_webp(tmp_path):
    path = crop_and_save(png_bytes(800, 600), Box(10, 20, 300, 250), str(tmp_path / "ad_1"))

    assert path.endswith(".webp")
    with Image.open(path) as img:
        assert img.size == (300, 250)
        assert img.getpixel((5, 5))[:3] == (200, 30, 30)


def test_crop_is_clamped_to_the_screenshot(tmp_path):
    path = crop_and_save(png_bytes(400, 300), Box(350, 250, 300, 250), str(tmp_path / "ad_2"))

    with Image.open(path) as img:
        assert img.size == (50, 50)


def test_crop_outside_screenshot_raises(tmp_path):
    with pytest.raises(ValueError):
        crop_and_save(png_bytes(100, 100), Box(200, 200, 50, 50), str(tmp_path / "ad_3"))


def test_oversized_image_falls_back_to_png(tmp_path):
    tall = Image.new("RGB", (1, WEBP_MAX_DIMENSION + 1))

    path = encode_lossless(tall, str(tmp_path / "page_1"))

    assert path.endswith(".png")
    assert os.path.exists(path)


def test_save_screenshot_keeps_full_size(tmp_path):
    path = save_screenshot(png_bytes(120, 900), str(tmp_path / "page_2"))

    with Image.open(path) as img:
        assert img.size == (120, 900)


def test_remove_dir_if_empty(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    full = tmp_path / "full"
    full.mkdir()
    (full / "x.txt").write_text("x")

    assert remove_dir_if_empty(str(empty))
    assert not empty.exists()
    assert not remove_dir_if_empty(str(full))
    assert not remove_dir_if_empty(str(tmp_path / "missing"))

"""Screenshot cropping and lossless encoding."""

from __future__ import annotations

import io
import os

from PIL import Image

from .geometry import Box

# WebP cannot encode images beyond 16383px in either dimension.
WEBP_MAX_DIMENSION = 16383


def encode_lossless(img: Image.Image, base_path: str) -> str:
    """Write ``img`` as lossless WebP, or PNG when it is too large for WebP.

    ``base_path`` has no extension; the chosen one is appended and the full
    path returned.
    """

    if img.width > WEBP_MAX_DIMENSION or img.height > WEBP_MAX_DIMENSION:
        path = base_path + ".png"
        img.save(path, format="PNG")
    else:
        path = base_path + ".webp"
        img.save(path, format="WEBP", lossless=True)
    return path


def crop_and_save(png_bytes: bytes, box: Box, base_path: str) -> str:
    """Crop a screenshot to ``box`` (clamped to the image) and save it."""

    with Image.open(io.BytesIO(png_bytes)) as img:
        img.load()
        region = box.clamp(img.width, img.height)
        if region.width <= 0 or region.height <= 0:
            raise ValueError(f"crop region {box} lies outside the {img.width}x{img.height} screenshot")
        cropped = img.crop(region.as_pil())
    return encode_lossless(cropped, base_path)


def save_screenshot(png_bytes: bytes, base_path: str) -> str:
    with Image.open(io.BytesIO(png_bytes)) as img:
        img.load()
        return encode_lossless(img, base_path)


def ensure_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


def remove_dir_if_empty(path: str) -> bool:
    """Delete ``path`` if it exists and is empty; return whether it was removed."""

    try:
        if os.path.isdir(path) and not os.listdir(path):
            os.rmdir(path)
            return True
    except OSError:
        return False
    return False


__all__ = [
    "WEBP_MAX_DIMENSION",
    "crop_and_save",
    "encode_lossless",
    "ensure_dir",
    "remove_dir_if_empty",
    "save_screenshot",
]

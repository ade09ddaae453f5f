"""Tests for square JPEG normalisation and ZIP packaging."""
from __future__ import annotations

import io
import os
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from adstudio.services.archive import build_zip_archive
from adstudio.services.errors import EncodeError
from adstudio.services.postprocess import normalize_creative_image
from tests.stubs import image_bytes


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def test_wide_image_is_letterboxed_on_square_canvas() -> None:
    result = _open(normalize_creative_image(image_bytes(size=(200, 100), color=(200, 30, 30, 255))))

    assert result.format == "JPEG"
    assert result.size == (1024, 1024)
    assert result.mode == "RGB"
    # Bands above and below the contained image stay white.
    top = result.getpixel((512, 10))
    assert all(channel > 245 for channel in top)
    centre = result.getpixel((512, 512))
    assert centre[0] > 150 and centre[1] < 80


def test_transparency_is_flattened_onto_white() -> None:
    transparent = image_bytes(size=(64, 64), color=(0, 0, 0, 0))

    result = _open(normalize_creative_image(transparent, size=256))

    assert result.size == (256, 256)
    assert all(channel > 245 for channel in result.getpixel((128, 128)))


def test_non_image_bytes_raise_encode_error() -> None:
    with pytest.raises(EncodeError):
        normalize_creative_image(b"definitely not an image")


def test_zip_archive_round_trips_bytes(tmp_path: Path) -> None:
    image = tmp_path / "a.jpg"
    caption = tmp_path / "a.txt"
    jpeg = normalize_creative_image(image_bytes(size=(640, 480)), size=512)
    image.write_bytes(jpeg + os.urandom(64 * 1024))
    caption.write_text("Buy now! Café crème, 2 for 1.", encoding="utf-8")

    data = build_zip_archive(
        [("creative-1.jpg", image), ("creative-1.txt", caption)]
    )

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.testzip() is None
        assert archive.namelist() == ["creative-1.jpg", "creative-1.txt"]
        assert archive.read("creative-1.jpg") == image.read_bytes()
        assert archive.read("creative-1.txt") == caption.read_bytes()
        assert archive.getinfo("creative-1.jpg").compress_type == zipfile.ZIP_DEFLATED

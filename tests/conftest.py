"""
Shared fixtures for the wigglegram test suite.
"""

from __future__ import annotations

import io
import shutil
import tempfile
from pathlib import Path

import pytest
from PIL import Image

from wigglegram.types import ImagePair


def pytest_configure(config):
    """Register custom markers used across sub-suites."""
    config.addinivalue_line("markers", "slow: records real video through ffmpeg")


def make_view(shift: int, size: tuple[int, int] = (64, 48)) -> Image.Image:
    """A white RGB frame with a red 16x16 square whose left edge is at ``20 - shift``."""
    img = Image.new("RGB", size, "white")
    x0 = 20 - shift
    img.paste((255, 0, 0), (x0, 16, x0 + 16, 32))
    # A blue column marks the left edge so crops are easy to tell apart.
    img.paste((0, 0, 255), (0, 0, 2, size[1]))
    return img


def jpeg_bytes(img: Image.Image, quality: int = 90) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


@pytest.fixture(scope="session")
def has_ffmpeg() -> bool:
    return shutil.which("ffmpeg") is not None


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory(prefix="wigglegram_test_") as d:
        yield Path(d)


@pytest.fixture
def left_image():
    return make_view(0)


@pytest.fixture
def right_image():
    return make_view(8)


@pytest.fixture
def image_pair(left_image, right_image):
    """A 64x48 stereo pair built directly from bitmaps (no JPEG loss)."""
    return ImagePair.from_images(left_image, right_image)


@pytest.fixture
def left_jpeg(left_image):
    return jpeg_bytes(left_image)


@pytest.fixture
def right_jpeg(right_image):
    return jpeg_bytes(right_image)


@pytest.fixture
def mpo_bytes(left_jpeg, right_jpeg):
    """Two complete JPEG streams back to back, as a stereo camera writes them."""
    return left_jpeg + right_jpeg

"""
Decoding of the two split JPEG streams into an ImagePair.

Pixel decoding is delegated to Pillow.  The two halves are decoded
concurrently and joined: the pair is only built once both decodes have
resolved, and a failure of either aborts the whole load so no partial
pair is ever exposed.
"""

from __future__ import annotations

import asyncio
import io
import logging

from PIL import Image, ImageOps

from wigglegram.container import split
from wigglegram.exceptions import ImageDecodeFailure
from wigglegram.types import ImagePair

logger = logging.getLogger(__name__)


def decode_jpeg(data: bytes, side: str = "") -> Image.Image:
    """Decode one embedded JPEG into a fully loaded RGB image.

    EXIF orientation is applied so the bitmap is upright, matching what
    an image viewer would display.
    """
    if not data:
        raise ImageDecodeFailure(f"The {side or 'image'} byte range is empty.", side=side)
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            upright = ImageOps.exif_transpose(img)
            rgb = upright.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeFailure(
            f"Could not decode the {side or 'embedded'} image: {exc}", side=side,
        ) from exc
    logger.debug("Decoded %s image: %dx%d", side or "embedded", rgb.width, rgb.height)
    return rgb


async def decode_pair(left_bytes: bytes, right_bytes: bytes) -> ImagePair:
    """Decode both halves concurrently and build the pair once both resolve."""
    left, right = await asyncio.gather(
        asyncio.to_thread(decode_jpeg, left_bytes, "left"),
        asyncio.to_thread(decode_jpeg, right_bytes, "right"),
    )
    if left.size != right.size:
        logger.warning(
            "Left and right images differ in size (%s vs %s); using the left size.",
            left.size, right.size,
        )
    return ImagePair.from_images(left, right)


async def load_pair(container: bytes) -> ImagePair:
    """Split an MPO buffer and decode both embedded images."""
    result = split(container)
    return await decode_pair(result.left.slice(container), result.right.slice(container))

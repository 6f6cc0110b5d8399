"""
Frame composition.

Draws one half of the stereo pair onto a target surface, aligned by a
horizontal pixel offset.

Crop mode
---------
The output is ``offset`` pixels narrower than the source.  The left view
is sampled from x = 0 and the right view from x = offset, so each side
gives up a strip on the opposite edge.

Pad mode
--------
The output is ``offset`` pixels wider than the source and filled with
``PAD_COLOR``.  The left view is drawn at x = offset and the right view at
x = 0.  Reversing the placement doubles the shift instead of cancelling
it.
"""

from __future__ import annotations

import logging

from PIL import Image

from wigglegram.surface import DrawSurface
from wigglegram.types import ActiveFrame, AlignmentMode, AlignmentSettings, ImagePair

logger = logging.getLogger(__name__)

PAD_COLOR = "white"


def effective_offset(width: int, alignment: AlignmentSettings) -> int:
    """Offset actually applied for *width*; crop never goes below 1 px wide."""
    offset = alignment.offset_pixels
    if alignment.mode is AlignmentMode.CROP and offset >= width:
        clamped = max(width - 1, 0)
        logger.warning(
            "Crop offset %d is not smaller than the image width %d; using %d.",
            offset, width, clamped,
        )
        return clamped
    return offset


def output_size(width: int, height: int, alignment: AlignmentSettings) -> tuple[int, int]:
    """Surface dimensions for a ``width`` x ``height`` source under *alignment*."""
    offset = effective_offset(width, alignment)
    if alignment.mode is AlignmentMode.CROP:
        return (width - offset, height)
    return (width + offset, height)


def compose(
    pair: ImagePair | None,
    alignment: AlignmentSettings,
    active_frame: ActiveFrame,
    target: DrawSurface,
) -> bool:
    """Resize *target* and paint the active view onto it.

    Returns False, drawing nothing, when the pair is not fully loaded.
    """
    if pair is None or not pair.is_complete:
        logger.debug("Composition skipped: image pair not loaded.")
        return False

    image = pair.image_for(active_frame)
    w, h = pair.width, pair.height
    offset = effective_offset(w, alignment)

    if alignment.mode is AlignmentMode.CROP:
        target.resize(w - offset, h)
        sx = 0 if active_frame is ActiveFrame.LEFT else offset
        target.draw_image(image, (sx, 0, sx + w - offset, h), (0, 0))
    else:
        target.resize(w + offset, h)
        target.fill(PAD_COLOR)
        dx = offset if active_frame is ActiveFrame.LEFT else 0
        target.draw_image(image, (0, 0, w, h), (dx, 0))
    return True


def render_frame(
    pair: ImagePair,
    alignment: AlignmentSettings,
    active_frame: ActiveFrame,
) -> Image.Image:
    """Compose *active_frame* on a fresh offscreen surface and return it."""
    surface = DrawSurface()
    if not compose(pair, alignment, active_frame, surface):
        raise ValueError("Cannot render a frame from an incomplete image pair.")
    return surface.snapshot()

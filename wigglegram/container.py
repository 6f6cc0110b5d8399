"""
MPO container splitting.

An MPO file from a stereo camera is, for our purposes, two complete JPEG
streams written back to back.  Rather than walking the JPEG segment
structure the splitter uses a two-marker heuristic:

    1. Find the first Start-Of-Scan marker (FF DA).  This is inside the
       first image, past all of its header and APP segments.
    2. From there, find the next Start-Of-Image marker (FF D8).  That is
       where the second JPEG begins.

Inside entropy-coded scan data a literal 0xFF is always byte-stuffed
(FF 00), so FF D8 cannot appear there by accident.  Metadata before the
first scan, on the other hand, may embed thumbnails that contain their
own FF D8, which is why the SOI search never starts before the SOS.
"""

from __future__ import annotations

import logging

from wigglegram.exceptions import MalformedContainer
from wigglegram.types import ByteRange, SplitResult

logger = logging.getLogger(__name__)

SOS_MARKER = b"\xff\xda"
SOI_MARKER = b"\xff\xd8"


def find_marker(data: bytes, marker: bytes, start: int = 0) -> int:
    """Return the offset of the first *marker* at or after *start*, or -1."""
    return data.find(marker, start)


def split(container: bytes) -> SplitResult:
    """Locate the two embedded JPEG streams in *container*.

    Raises
    ------
    MalformedContainer
        If no SOS marker exists, or no SOI marker follows it.
    """
    sos = find_marker(container, SOS_MARKER)
    if sos == -1:
        raise MalformedContainer(
            "Could not find a Start-Of-Scan marker in the first image."
        )

    split_point = find_marker(container, SOI_MARKER, sos)
    if split_point == -1:
        raise MalformedContainer(
            "Not a valid MPO file (could not find the second image)."
        )

    logger.debug(
        "MPO split: first SOS at %d, second SOI at %d (total %d bytes)",
        sos, split_point, len(container),
    )
    return SplitResult(
        left=ByteRange(0, split_point),
        right=ByteRange(split_point, len(container)),
    )


def split_images(container: bytes) -> tuple[bytes, bytes]:
    """Split *container* and return the two JPEG byte strings."""
    result = split(container)
    return result.left.slice(container), result.right.slice(container)

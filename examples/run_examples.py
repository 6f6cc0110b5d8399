"""
Build a synthetic stereo pair and export it as a wigglegram.

Usage:
    python examples/run_examples.py [input.mpo]

Without an argument a two-view MPO is synthesized with Pillow.  Outputs
land next to this script: ``wigglegram.gif`` always, ``wigglegram.webm``
when ffmpeg is available.
"""

from __future__ import annotations

import asyncio
import io
import logging
import sys
from pathlib import Path

from PIL import Image, ImageDraw

from wigglegram.exceptions import CaptureUnsupported
from wigglegram.export import ExportPipeline
from wigglegram.session import WiggleSession
from wigglegram.types import ExportFormat

EXAMPLES_DIR = Path(__file__).parent


def synthetic_mpo(width: int = 320, height: int = 240, disparity: int = 12) -> bytes:
    """Two JPEGs back to back; the near object shifts, the far one barely moves."""
    views = []
    for shift in (0, disparity):
        img = Image.new("RGB", (width, height), (200, 220, 240))
        draw = ImageDraw.Draw(img)
        draw.rectangle((40 - shift // 4, 60, 120 - shift // 4, 200), fill=(90, 140, 90))
        draw.ellipse((160 - shift, 90, 240 - shift, 170), fill=(220, 60, 40))
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=92)
        views.append(buf.getvalue())
    return b"".join(views)


async def run(data: bytes) -> None:
    session = WiggleSession()
    session.update_settings(offset=12)
    result = await session.load_bytes(data)
    print(f"Loaded {result.width}x{result.height} pair")

    pipeline = ExportPipeline(session)
    job = await pipeline.export(ExportFormat.FRAME_SEQUENCE)
    path = job.artifact.save(EXAMPLES_DIR)
    print(f"  {job.message} {path} ({job.artifact.size_bytes} bytes)")

    try:
        job = await pipeline.export(ExportFormat.CAPTURED_STREAM)
    except CaptureUnsupported as exc:
        print(f"  Skipping video: {exc}")
    else:
        path = job.artifact.save(EXAMPLES_DIR)
        print(f"  {job.message} {path} ({job.artifact.size_bytes} bytes)")
    finally:
        session.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) > 1:
        data = Path(sys.argv[1]).read_bytes()
    else:
        data = synthetic_mpo()
    asyncio.run(run(data))


if __name__ == "__main__":
    main()

"""
wigglegram -- Wiggle stereo animations from MPO files.

Splits a two-image MPO container, aligns the left and right views by a
horizontal offset, alternates them as a live animation, and exports the
result as a looping GIF or a short WebM recording.
"""

__version__ = "0.1.0"

from wigglegram.exceptions import WigglegramError
from wigglegram.export import ExportPipeline
from wigglegram.session import WiggleSession
from wigglegram.types import (
    ActiveFrame,
    AlignmentMode,
    AlignmentSettings,
    Artifact,
    ExportFormat,
    ExportJob,
    ExportStatus,
    ImagePair,
    PlaybackSettings,
    SplitResult,
)

__all__ = [
    "ActiveFrame",
    "AlignmentMode",
    "AlignmentSettings",
    "Artifact",
    "ExportFormat",
    "ExportJob",
    "ExportPipeline",
    "ExportStatus",
    "ImagePair",
    "PlaybackSettings",
    "SplitResult",
    "WiggleSession",
    "WigglegramError",
]

"""
Runtime defaults and system-dependency discovery.

Defaults mirror the controls of the interactive tool: a speed of 8
wiggles per second, a 64 px offset and crop alignment.  The captured
stream exporter needs an ``ffmpeg`` binary; it is located here so the
capability check can run before any recording starts.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from wigglegram.exceptions import CaptureUnsupported
from wigglegram.types import AlignmentMode, AlignmentSettings, PlaybackSettings

DEFAULT_SPEED = 8.0
DEFAULT_OFFSET = 64
DEFAULT_MODE = AlignmentMode.CROP

ARTIFACT_BASENAME = "wigglegram"
CAPTURE_DURATION_S = 5.0

FFMPEG_ENV_HINT = "Install ffmpeg (e.g. `sudo apt-get install ffmpeg` or `brew install ffmpeg`)."


def default_alignment() -> AlignmentSettings:
    return AlignmentSettings(offset_pixels=DEFAULT_OFFSET, mode=DEFAULT_MODE)


def default_playback() -> PlaybackSettings:
    return PlaybackSettings(speed_factor=DEFAULT_SPEED)


def find_ffmpeg() -> Path | None:
    """Return the absolute path to ``ffmpeg``, or None if it is not on $PATH."""
    path = shutil.which("ffmpeg")
    return Path(path) if path is not None else None


def resolve_ffmpeg() -> Path:
    """Find ``ffmpeg`` or raise CaptureUnsupported."""
    path = find_ffmpeg()
    if path is None:
        raise CaptureUnsupported(
            f"Video export is not supported here: 'ffmpeg' not found on $PATH. {FFMPEG_ENV_HINT}"
        )
    return path

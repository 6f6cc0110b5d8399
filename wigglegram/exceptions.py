"""
Custom exception hierarchy for wigglegram.

All wigglegram exceptions inherit from WigglegramError so callers can catch
the entire family with a single except clause.
"""

from __future__ import annotations


class WigglegramError(Exception):
    """Base exception for all wigglegram errors."""


class MalformedContainer(WigglegramError):
    """Raised when an MPO buffer lacks the SOS or the second SOI marker."""


class ImageDecodeFailure(WigglegramError):
    """Raised when one half of a split container cannot be decoded."""

    def __init__(self, message: str, side: str = "") -> None:
        super().__init__(message)
        self.side = side


class EncodingUnavailable(WigglegramError):
    """Raised when the frame-sequence encoder cannot be initialized."""


class CaptureUnsupported(WigglegramError):
    """Raised when the host cannot capture or record a live stream."""


class EncodingError(WigglegramError):
    """Raised when an external encoder runs but fails."""

    def __init__(self, message: str, log_content: str = "") -> None:
        super().__init__(message)
        self.log_content = log_content


class ExportBusy(WigglegramError):
    """Raised when an export is requested while another one is running."""


class PresetError(WigglegramError):
    """Raised when a preset file cannot be parsed."""


class NoImagesLoaded(WigglegramError):
    """Raised when an export is requested before a stereo pair is loaded."""

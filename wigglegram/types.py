"""
Core data structures shared by the splitter, compositor, scheduler and
export pipeline.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image


class AlignmentMode(enum.Enum):
    """How the two views are brought to a common frame size."""
    CROP = "crop"     # Trim `offset` columns, output is narrower.
    PAD = "pad"       # Add `offset` columns of fill, output is wider.


class ActiveFrame(enum.Enum):
    """Which half of the stereo pair is currently shown."""
    LEFT = 0
    RIGHT = 1

    def toggled(self) -> ActiveFrame:
        return ActiveFrame.RIGHT if self is ActiveFrame.LEFT else ActiveFrame.LEFT


class ExportFormat(enum.Enum):
    """The two export strategies."""
    FRAME_SEQUENCE = "frame_sequence"     # Looping two-frame raster (GIF).
    CAPTURED_STREAM = "captured_stream"   # Recorded live surface (WebM).


class ExportStatus(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ByteRange:
    """Half-open ``[start, end)`` view into a raw container."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def slice(self, data: bytes) -> bytes:
        return data[self.start:self.end]


@dataclass(frozen=True)
class SplitResult:
    """The two embedded JPEG streams located inside an MPO buffer."""
    left: ByteRange
    right: ByteRange


@dataclass(frozen=True)
class ImagePair:
    """Decoded left/right bitmaps plus the shared natural dimensions.

    ``width`` and ``height`` come from the left image; both halves are
    assumed to have the same size.
    """
    left: Image.Image | None
    right: Image.Image | None
    width: int
    height: int

    @classmethod
    def from_images(cls, left: Image.Image, right: Image.Image) -> ImagePair:
        return cls(left=left, right=right, width=left.width, height=left.height)

    @property
    def is_complete(self) -> bool:
        return self.left is not None and self.right is not None

    def image_for(self, frame: ActiveFrame) -> Image.Image | None:
        return self.left if frame is ActiveFrame.LEFT else self.right


@dataclass(frozen=True)
class AlignmentSettings:
    """Horizontal alignment of the two views."""
    offset_pixels: int = 64
    mode: AlignmentMode = AlignmentMode.CROP

    def __post_init__(self) -> None:
        if isinstance(self.offset_pixels, bool) or not isinstance(self.offset_pixels, int):
            raise ValueError(f"offset_pixels must be an int, got {self.offset_pixels!r}")
        if self.offset_pixels < 0:
            raise ValueError(f"offset_pixels must be >= 0, got {self.offset_pixels}")


@dataclass(frozen=True)
class PlaybackSettings:
    """Animation speed.  One wiggle cycle is two half-cycles (left, right)."""
    speed_factor: float = 8.0

    def __post_init__(self) -> None:
        if not (self.speed_factor > 0 and math.isfinite(self.speed_factor)):
            raise ValueError(f"speed_factor must be positive and finite, got {self.speed_factor!r}")

    @property
    def frame_interval_ms(self) -> float:
        return 1000.0 / (2 * self.speed_factor)

    @property
    def capture_fps(self) -> float:
        return 2 * self.speed_factor


@dataclass
class AnimationState:
    """Mutable playback position, owned by the session."""
    active_frame: ActiveFrame = ActiveFrame.LEFT
    ticks: int = 0

    def reset(self) -> None:
        self.active_frame = ActiveFrame.LEFT
        self.ticks = 0

    def advance(self) -> ActiveFrame:
        self.active_frame = self.active_frame.toggled()
        self.ticks += 1
        return self.active_frame


@dataclass(frozen=True)
class Artifact:
    """Encoded export output, named deterministically per format."""
    data: bytes
    filename: str
    mime_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def save(self, directory: Path | str = ".") -> Path:
        """Write the artifact into *directory* under its fixed filename."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.filename
        path.write_bytes(self.data)
        return path


@dataclass
class ExportJob:
    """One export attempt."""
    target: ExportFormat
    status: ExportStatus = ExportStatus.IDLE
    artifact: Artifact | None = None
    error: str = ""
    message: str = ""

    @property
    def finished(self) -> bool:
        return self.status in (ExportStatus.SUCCEEDED, ExportStatus.FAILED)


@dataclass
class LoadResult:
    """Summary of a successful load, used for status reporting."""
    split: SplitResult
    width: int
    height: int
    warnings: list[str] = field(default_factory=list)

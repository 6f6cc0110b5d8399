"""
Draw targets for the compositor.

The same composition code renders either to the live surface shown to the
user or to an offscreen surface used for export.  The target is always
passed explicitly; there is no notion of a "current" canvas.
"""

from __future__ import annotations

from PIL import Image

BLANK_COLOR = (0, 0, 0)


class DrawSurface:
    """A resizable RGB bitmap that images are drawn onto."""

    def __init__(self, width: int = 0, height: int = 0) -> None:
        self._image: Image.Image | None = None
        self.last_origin: tuple[int, int] | None = None
        if width > 0 and height > 0:
            self.resize(width, height)

    @property
    def size(self) -> tuple[int, int]:
        if self._image is None:
            return (0, 0)
        return self._image.size

    @property
    def width(self) -> int:
        return self.size[0]

    @property
    def height(self) -> int:
        return self.size[1]

    @property
    def is_blank(self) -> bool:
        """True until something has been drawn since the last resize."""
        return self._image is None or self.last_origin is None

    def resize(self, width: int, height: int) -> None:
        """Set the surface dimensions.  Resizing always clears the content."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Surface dimensions must be positive, got {width}x{height}")
        self._image = Image.new("RGB", (width, height), BLANK_COLOR)
        self.last_origin = None

    def clear(self) -> None:
        if self._image is not None:
            self.resize(*self._image.size)

    def fill(self, color: str | tuple[int, int, int]) -> None:
        if self._image is None:
            raise RuntimeError("Cannot fill a surface that has no size yet.")
        self._image.paste(color, (0, 0, *self._image.size))

    def draw_image(
        self,
        source: Image.Image,
        src_box: tuple[int, int, int, int],
        dest: tuple[int, int],
    ) -> None:
        """Copy the ``(left, upper, right, lower)`` region of *source* to *dest*."""
        if self._image is None:
            raise RuntimeError("Cannot draw on a surface that has no size yet.")
        region = source.crop(src_box)
        if region.mode != "RGB":
            region = region.convert("RGB")
        self._image.paste(region, dest)
        self.last_origin = dest

    def snapshot(self) -> Image.Image | None:
        """Return a copy of the current bitmap, or None if unsized."""
        if self._image is None:
            return None
        return self._image.copy()

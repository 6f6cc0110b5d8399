"""
The session-scoped context.

A ``WiggleSession`` owns everything the live view and the exporters need:
the decoded image pair, the alignment and playback snapshots, the
animation state and the live surface.  Components receive the session
explicitly and read from it on every frame, so a settings change is
visible on the next tick without any propagation step.

Settings are frozen dataclasses that are replaced wholesale, never
mutated, so every composed frame sees one consistent snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path

from wigglegram.config import default_alignment, default_playback
from wigglegram.container import split
from wigglegram.decode import decode_pair
from wigglegram.exceptions import MalformedContainer
from wigglegram.presets import Preset
from wigglegram.scheduler import AnimationScheduler
from wigglegram.surface import DrawSurface
from wigglegram.types import (
    AlignmentMode,
    AlignmentSettings,
    AnimationState,
    ImagePair,
    LoadResult,
    PlaybackSettings,
)

logger = logging.getLogger(__name__)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class WiggleSession:
    """Images, settings and animation state for one viewing session."""

    def __init__(
        self,
        alignment: AlignmentSettings | None = None,
        playback: PlaybackSettings | None = None,
    ) -> None:
        self.pair: ImagePair | None = None
        self.alignment = alignment or default_alignment()
        self.playback = playback or default_playback()
        self.state = AnimationState()
        self.surface = DrawSurface()
        self.scheduler = AnimationScheduler(self)
        self.visible = False
        self.status = ""
        self._closed = False

    # ---- Loading ---------------------------------------------------------

    async def load_bytes(self, data: bytes) -> LoadResult:
        """Split and decode an MPO buffer, then restart the animation.

        Any failure aborts the load and leaves the previous pair (or the
        hidden view, on a first load) untouched.
        """
        self.status = "Processing file..."
        try:
            if not data:
                raise MalformedContainer("The file is empty.")
            result = split(data)
            pair = await decode_pair(result.left.slice(data), result.right.slice(data))
        except Exception:
            self.status = "Failed to load file."
            raise

        self.scheduler.stop()
        self.pair = pair
        self.state.reset()
        self.visible = True
        self.status = ""
        logger.debug("Loaded %dx%d stereo pair", pair.width, pair.height)

        warnings: list[str] = []
        if pair.left.size != pair.right.size:
            warnings.append(
                f"Right image size {pair.right.size} differs from left {pair.left.size}."
            )
        self._refresh()
        return LoadResult(split=result, width=pair.width, height=pair.height, warnings=warnings)

    async def load_file(self, path: Path | str) -> LoadResult:
        data = await asyncio.to_thread(Path(path).read_bytes)
        return await self.load_bytes(data)

    # ---- Settings --------------------------------------------------------

    def update_settings(
        self,
        speed: float | None = None,
        offset: int | None = None,
        mode: AlignmentMode | None = None,
    ) -> None:
        """Replace the settings snapshots and restart the animation.

        Validation happens before anything is replaced, so an invalid
        value leaves both snapshots as they were.
        """
        playback = self.playback
        alignment = self.alignment
        if speed is not None:
            playback = PlaybackSettings(speed_factor=speed)
        if offset is not None or mode is not None:
            alignment = replace(
                alignment,
                offset_pixels=alignment.offset_pixels if offset is None else offset,
                mode=alignment.mode if mode is None else mode,
            )
        self.playback = playback
        self.alignment = alignment
        logger.debug(
            "Settings: speed=%s offset=%d mode=%s",
            playback.speed_factor, alignment.offset_pixels, alignment.mode.value,
        )
        self._refresh()

    def apply_preset(self, preset: Preset) -> None:
        """Use a preset's speed and offset; presets always start cropped."""
        self.update_settings(speed=preset.speed, offset=preset.offset, mode=AlignmentMode.CROP)

    # ---- Lifecycle -------------------------------------------------------

    def _refresh(self) -> None:
        """Restart the animation, or draw a still frame when no loop runs."""
        if self._closed:
            return
        if _loop_running():
            self.scheduler.restart()
        else:
            self.scheduler.render()

    def close(self) -> None:
        self._closed = True
        self.scheduler.stop()

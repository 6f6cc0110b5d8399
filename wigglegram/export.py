"""
Export pipeline.

Turns the composited wiggle into a downloadable artifact.  Two strategies
share the compositor and nothing else:

* **Frame sequence** -- composite the left and the right frame, each on
  its own offscreen surface, and encode the pair as a looping animation
  with Pillow (GIF by default, WebP or APNG on request).
* **Captured stream** -- sample the live surface at ``2 * speed`` frames
  per second for a fixed duration and record the samples as a WebM
  video by piping raw RGB frames into ``ffmpeg``.

Both strategies check their environment before doing any work, so a
missing encoder fails fast and never leaves a partial artifact.  The
``ExportPipeline`` front end tracks one job at a time and rejects
requests made while a job is running.
"""

from __future__ import annotations

import abc
import asyncio
import enum
import io
import logging
import math
import shutil
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from PIL import Image, features

from wigglegram.compositor import compose
from wigglegram.config import ARTIFACT_BASENAME, CAPTURE_DURATION_S, find_ffmpeg, resolve_ffmpeg
from wigglegram.exceptions import (
    CaptureUnsupported,
    EncodingError,
    EncodingUnavailable,
    ExportBusy,
    NoImagesLoaded,
)
from wigglegram.session import WiggleSession
from wigglegram.surface import DrawSurface
from wigglegram.types import (
    ActiveFrame,
    AlignmentSettings,
    Artifact,
    ExportFormat,
    ExportJob,
    ExportStatus,
    ImagePair,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations and configuration
# ---------------------------------------------------------------------------

class SequenceFormat(enum.Enum):
    """Looping raster formats written by the frame-sequence exporter."""
    GIF = "gif"
    WEBP = "webp"
    APNG = "apng"


class DitherAlgorithm(enum.Enum):
    """Dithering algorithm for GIF quantization."""
    FLOYD_STEINBERG = "floyd_steinberg"
    ORDERED = "ordered"
    NONE = "none"


# Pillow writer name, file extension, MIME type, display label.
_SEQUENCE_WRITERS: dict[SequenceFormat, tuple[str, str, str, str]] = {
    SequenceFormat.GIF: ("GIF", "gif", "image/gif", "GIF"),
    SequenceFormat.WEBP: ("WEBP", "webp", "image/webp", "WebP"),
    SequenceFormat.APNG: ("PNG", "png", "image/apng", "APNG"),
}

_PIL_DITHER = {
    DitherAlgorithm.FLOYD_STEINBERG: Image.Dither.FLOYDSTEINBERG,
    DitherAlgorithm.ORDERED: Image.Dither.ORDERED,
    DitherAlgorithm.NONE: Image.Dither.NONE,
}


@dataclass
class FrameSequenceConfig:
    """Options for the looping two-frame export."""
    format: SequenceFormat = SequenceFormat.GIF
    loop_count: int = 0             # 0 = infinite loop
    colors: int = 256               # GIF palette entries (2 -- 256)
    dither: DitherAlgorithm = DitherAlgorithm.FLOYD_STEINBERG
    two_pass_palette: bool = True   # One palette shared by both frames
    webp_quality: int = 85          # 0 -- 100
    webp_lossless: bool = False
    comment: str = "Generated by wigglegram"

    @property
    def filename(self) -> str:
        return f"{ARTIFACT_BASENAME}.{_SEQUENCE_WRITERS[self.format][1]}"

    @property
    def mime_type(self) -> str:
        return _SEQUENCE_WRITERS[self.format][2]

    @property
    def label(self) -> str:
        return _SEQUENCE_WRITERS[self.format][3]


@dataclass
class CapturedStreamConfig:
    """Options for the recorded-video export."""
    duration_s: float = CAPTURE_DURATION_S
    codec: str = "libvpx"
    crf: int = 10                   # libvpx: 4 -- 63, lower = better
    bitrate: str = "2M"             # libvpx needs a target bitrate with crf
    pixel_format: str = "yuv420p"
    container: str = "webm"
    mime_type: str = "video/webm"
    label: str = "WebM"
    timeout_s: float = 120.0
    extra_args: list[str] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return f"{ARTIFACT_BASENAME}.{self.container}"


# ---------------------------------------------------------------------------
# Palette helpers
# ---------------------------------------------------------------------------

def generate_global_palette(
    images: list[Image.Image],
    max_colors: int = 256,
    dither: DitherAlgorithm = DitherAlgorithm.FLOYD_STEINBERG,
) -> tuple[Image.Image, list[Image.Image]]:
    """Quantize *images* against one palette built from all of them.

    The frames are tiled side by side into a single strip, the strip is
    quantized to get the shared palette, and each frame is then remapped
    to it.  Sharing the palette keeps the static background from
    shimmering between the two frames.

    Returns ``(palette_image, quantized_frames)``.
    """
    total_w = sum(img.width for img in images)
    max_h = max(img.height for img in images)
    strip = Image.new("RGB", (total_w, max_h))
    x = 0
    for img in images:
        strip.paste(img.convert("RGB"), (x, 0))
        x += img.width

    palette_img = strip.quantize(
        colors=max_colors,
        method=Image.Quantize.MEDIANCUT,
        dither=Image.Dither.NONE,
    )
    quantized = [
        img.convert("RGB").quantize(palette=palette_img, dither=_PIL_DITHER[dither])
        for img in images
    ]
    return palette_img, quantized


def encoder_available(fmt: SequenceFormat) -> bool:
    """True if this Pillow build can write a multi-frame *fmt* file."""
    Image.init()
    writer = _SEQUENCE_WRITERS[fmt][0]
    if writer not in Image.SAVE_ALL:
        return False
    if fmt is SequenceFormat.WEBP:
        return bool(features.check("webp"))
    return True


# ---------------------------------------------------------------------------
# Strategy interface
# ---------------------------------------------------------------------------

class ExportStrategy(abc.ABC):
    """One way of turning a session into an artifact."""

    target: ExportFormat

    @abc.abstractmethod
    def check_available(self, session: WiggleSession) -> None:
        """Raise if the environment cannot run this export."""

    @abc.abstractmethod
    async def export(self, session: WiggleSession) -> Artifact:
        """Produce the artifact for *session*."""

    @property
    def running_message(self) -> str:
        return "Exporting..."

    @property
    def done_message(self) -> str:
        return "Export finished."


# ===================================================================
#  SECTION 1 -- FRAME SEQUENCE (GIF / WebP / APNG)
# ===================================================================

class FrameSequenceExporter(ExportStrategy):
    """Encode the left and right composites as a looping animation."""

    target = ExportFormat.FRAME_SEQUENCE

    def __init__(self, config: FrameSequenceConfig | None = None) -> None:
        self.config = config or FrameSequenceConfig()

    @property
    def running_message(self) -> str:
        return f"Generating {self.config.label}..."

    @property
    def done_message(self) -> str:
        return f"{self.config.label} exported!"

    def check_available(self, session: WiggleSession) -> None:
        if not encoder_available(self.config.format):
            raise EncodingUnavailable(
                f"This Pillow build cannot write animated {self.config.format.value.upper()} files."
            )

    def render_frames(self, session: WiggleSession) -> list[tuple[Image.Image, float]]:
        """Composite both views offscreen; returns ``(bitmap, delay_ms)`` pairs.

        Settings are read once, so both frames come from the same snapshot.
        The session's live animation state is not touched.
        """
        return self.compose_frames(
            session.pair, session.alignment, session.playback.frame_interval_ms,
        )

    def compose_frames(
        self,
        pair: ImagePair | None,
        alignment: AlignmentSettings,
        delay_ms: float,
    ) -> list[tuple[Image.Image, float]]:
        frames: list[tuple[Image.Image, float]] = []
        for active in (ActiveFrame.LEFT, ActiveFrame.RIGHT):
            offscreen = DrawSurface()
            if not compose(pair, alignment, active, offscreen):
                raise NoImagesLoaded("Nothing to export: no stereo pair is loaded.")
            frames.append((offscreen.snapshot(), delay_ms))
        return frames

    def encode(self, frames: list[tuple[Image.Image, float]]) -> bytes:
        cfg = self.config
        images = [img for img, _ in frames]
        durations = [max(1, round(d)) for _, d in frames]
        buf = io.BytesIO()

        if cfg.format is SequenceFormat.GIF:
            if cfg.two_pass_palette:
                _palette, p_frames = generate_global_palette(images, cfg.colors, cfg.dither)
            else:
                p_frames = [
                    img.quantize(colors=cfg.colors, dither=_PIL_DITHER[cfg.dither])
                    for img in images
                ]
            save_kwargs: dict = dict(
                format="GIF",
                save_all=True,
                append_images=p_frames[1:],
                duration=durations,
                loop=cfg.loop_count,
                disposal=2,
            )
            if cfg.comment:
                save_kwargs["comment"] = cfg.comment.encode("utf-8")
            p_frames[0].save(buf, **save_kwargs)
        elif cfg.format is SequenceFormat.WEBP:
            images[0].save(
                buf,
                format="WEBP",
                save_all=True,
                append_images=images[1:],
                duration=durations,
                loop=cfg.loop_count,
                quality=cfg.webp_quality,
                lossless=cfg.webp_lossless,
            )
        else:
            images[0].save(
                buf,
                format="PNG",
                save_all=True,
                append_images=images[1:],
                duration=durations,
                loop=cfg.loop_count,
                default_image=False,
            )
        return buf.getvalue()

    def render(self, session: WiggleSession) -> Artifact:
        """Synchronous export: composite, encode, wrap."""
        self.check_available(session)
        return self._render_snapshot(
            session.pair, session.alignment, session.playback.frame_interval_ms,
        )

    def _render_snapshot(
        self,
        pair: ImagePair | None,
        alignment: AlignmentSettings,
        delay_ms: float,
    ) -> Artifact:
        frames = self.compose_frames(pair, alignment, delay_ms)
        data = self.encode(frames)
        logger.debug(
            "Encoded %s: %d frames, %d bytes", self.config.filename, len(frames), len(data),
        )
        return Artifact(data=data, filename=self.config.filename, mime_type=self.config.mime_type)

    async def export(self, session: WiggleSession) -> Artifact:
        """Take the settings snapshot on the loop, then composite and encode
        in a worker thread so the live animation keeps running."""
        self.check_available(session)
        return await asyncio.to_thread(
            self._render_snapshot,
            session.pair, session.alignment, session.playback.frame_interval_ms,
        )


# ===================================================================
#  SECTION 2 -- CAPTURED STREAM (WebM)
# ===================================================================

class StreamRecorder(abc.ABC):
    """Receives sampled frames and produces the encoded video chunks."""

    name: str = "abstract"

    @abc.abstractmethod
    def is_available(self) -> bool:
        """Return True if the recorder can run on this host."""

    @abc.abstractmethod
    def start(self, width: int, height: int, fps: float) -> None:
        """Begin a recording of ``width`` x ``height`` frames at *fps*."""

    @abc.abstractmethod
    def write_frame(self, image: Image.Image) -> None:
        """Append one frame to the recording."""

    @abc.abstractmethod
    def stop(self) -> list[bytes]:
        """Finish the recording and return the emitted chunks in order."""

    @abc.abstractmethod
    def abort(self) -> None:
        """Discard a recording that will not be finished."""


def _fit_frame(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Place *image* on a black canvas of *size* if its dimensions differ.

    The video stream has a fixed frame size; the live surface may be
    resized mid-recording when the alignment mode changes.
    """
    if image.size == size:
        return image
    canvas = Image.new("RGB", size, (0, 0, 0))
    x = (size[0] - image.width) // 2
    y = (size[1] - image.height) // 2
    canvas.paste(image, (x, y))
    return canvas


class FfmpegStreamRecorder(StreamRecorder):
    """Records raw RGB frames into WebM by piping them through ffmpeg.

    Command structure::

        ffmpeg -y -f rawvideo -pix_fmt rgb24 -s WxH -r FPS -i pipe:0
               -c:v libvpx -pix_fmt yuv420p -crf 10 -b:v 2M
               -vf pad=ceil(iw/2)*2:ceil(ih/2)*2
               -f webm capture.webm

    stderr is drained on a background thread so a chatty ffmpeg cannot
    fill the pipe and stall the writer.
    """

    name = "ffmpeg"
    CHUNK_SIZE = 64 * 1024

    def __init__(self, config: CapturedStreamConfig | None = None) -> None:
        self.config = config or CapturedStreamConfig()
        self._proc: subprocess.Popen | None = None
        self._tmpdir: Path | None = None
        self._output: Path | None = None
        self._size: tuple[int, int] = (0, 0)
        self._stderr_chunks: list[bytes] = []
        self._stderr_thread: threading.Thread | None = None
        self.frames_written = 0

    def is_available(self) -> bool:
        return find_ffmpeg() is not None

    def build_command(self, ffmpeg: Path, width: int, height: int, fps: float, output: Path) -> list[str]:
        cfg = self.config
        cmd = [
            str(ffmpeg), "-y",
            "-loglevel", "error",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", f"{width}x{height}",
            "-r", f"{fps:g}",
            "-i", "pipe:0",
            "-c:v", cfg.codec,
            "-pix_fmt", cfg.pixel_format,
            "-crf", str(cfg.crf),
            "-b:v", cfg.bitrate,
            # yuv420p needs even dimensions.
            "-vf", "pad=ceil(iw/2)*2:ceil(ih/2)*2",
        ]
        cmd += cfg.extra_args
        cmd += ["-f", cfg.container, str(output)]
        return cmd

    def _drain_stderr(self) -> None:
        stream = self._proc.stderr
        while True:
            chunk = stream.read(4096)
            if not chunk:
                break
            self._stderr_chunks.append(chunk)

    def start(self, width: int, height: int, fps: float) -> None:
        ffmpeg = resolve_ffmpeg()
        self._tmpdir = Path(tempfile.mkdtemp(prefix="wigglegram_rec_"))
        self._output = self._tmpdir / f"capture.{self.config.container}"
        self._size = (width, height)
        self._stderr_chunks = []
        self.frames_written = 0

        cmd = self.build_command(ffmpeg, width, height, fps, self._output)
        logger.debug("ffmpeg command: %s", " ".join(cmd))
        self._proc = subprocess.Popen(
            cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE,
        )
        self._stderr_thread = threading.Thread(target=self._drain_stderr, daemon=True)
        self._stderr_thread.start()

    def write_frame(self, image: Image.Image) -> None:
        if self._proc is None:
            raise RuntimeError("Recorder has not been started.")
        frame = _fit_frame(image.convert("RGB"), self._size)
        arr = np.asarray(frame, dtype=np.uint8)
        try:
            self._proc.stdin.write(arr.tobytes())
        except BrokenPipeError as exc:
            self.abort()
            raise EncodingError(
                "ffmpeg exited while frames were being written.",
                log_content=self._stderr_text(),
            ) from exc
        self.frames_written += 1

    def _stderr_text(self) -> str:
        return b"".join(self._stderr_chunks).decode(errors="replace")

    def stop(self) -> list[bytes]:
        if self._proc is None:
            raise RuntimeError("Recorder has not been started.")
        proc = self._proc
        try:
            proc.stdin.close()
            try:
                rc = proc.wait(timeout=self.config.timeout_s)
            except subprocess.TimeoutExpired as exc:
                proc.kill()
                proc.wait()
                raise EncodingError(
                    f"ffmpeg did not finish within {self.config.timeout_s:g}s."
                ) from exc
            if self._stderr_thread is not None:
                self._stderr_thread.join(timeout=5)
            if rc != 0:
                raise EncodingError(
                    f"ffmpeg failed (rc={rc}).", log_content=self._stderr_text(),
                )
            chunks: list[bytes] = []
            with open(self._output, "rb") as f:
                while True:
                    chunk = f.read(self.CHUNK_SIZE)
                    if not chunk:
                        break
                    chunks.append(chunk)
            return chunks
        finally:
            self._cleanup()

    def abort(self) -> None:
        if self._proc is not None and self._proc.poll() is None:
            self._proc.kill()
            self._proc.wait()
        self._cleanup()

    def _cleanup(self) -> None:
        self._proc = None
        if self._tmpdir is not None:
            shutil.rmtree(self._tmpdir, ignore_errors=True)
            self._tmpdir = None


class CapturedStreamExporter(ExportStrategy):
    """Record the live surface for a fixed duration."""

    target = ExportFormat.CAPTURED_STREAM

    def __init__(
        self,
        config: CapturedStreamConfig | None = None,
        recorder: StreamRecorder | None = None,
    ) -> None:
        self.config = config or CapturedStreamConfig()
        self.recorder = recorder or FfmpegStreamRecorder(self.config)

    @property
    def running_message(self) -> str:
        return "Recording video..."

    @property
    def done_message(self) -> str:
        return f"{self.config.label} exported!"

    def check_available(self, session: WiggleSession) -> None:
        if not self.recorder.is_available():
            raise CaptureUnsupported(
                f"Video export is not supported here: the '{self.recorder.name}' "
                f"recorder is unavailable."
            )
        if session.surface.snapshot() is None:
            raise CaptureUnsupported("Video export needs a live surface with content.")

    async def _write_frames(self, pending: asyncio.Queue) -> None:
        """Hand queued samples to the recorder in a worker thread, in order.

        A slow encoder delays only this consumer; sampling keeps its
        schedule and the live animation keeps ticking.
        """
        while True:
            frame = await pending.get()
            if frame is None:
                return
            await asyncio.to_thread(self.recorder.write_frame, frame)

    async def export(self, session: WiggleSession) -> Artifact:
        self.check_available(session)
        fps = session.playback.capture_fps
        duration = self.config.duration_s
        first = session.surface.snapshot()
        n_frames = max(1, math.ceil(duration * fps))

        self.recorder.start(first.width, first.height, fps)
        pending: asyncio.Queue = asyncio.Queue()
        writer = asyncio.ensure_future(self._write_frames(pending))
        loop = asyncio.get_running_loop()
        t0 = loop.time()
        try:
            i = 0
            while i < n_frames and not writer.done():
                await asyncio.sleep(max(0.0, t0 + i / fps - loop.time()))
                frame = session.surface.snapshot()
                # Deadlines that passed during a stall repeat this sample.
                due = min(n_frames, int((loop.time() - t0) * fps) + 1)
                repeat = max(1, due - i)
                for _ in range(repeat):
                    pending.put_nowait(frame)
                i += repeat
            pending.put_nowait(None)
            if not writer.done():
                await asyncio.sleep(max(0.0, t0 + duration - loop.time()))
            await writer
            chunks = await asyncio.to_thread(self.recorder.stop)
        except BaseException:
            writer.cancel()
            self.recorder.abort()
            raise

        data = b"".join(chunks)
        logger.debug(
            "Captured %d frames at %g fps into %d bytes", n_frames, fps, len(data),
        )
        return Artifact(data=data, filename=self.config.filename, mime_type=self.config.mime_type)


# ===================================================================
#  UNIFIED FRONT END
# ===================================================================

class ExportPipeline:
    """Runs one export job at a time against a session.

    Usage::

        pipeline = ExportPipeline(session)
        job = await pipeline.export(ExportFormat.FRAME_SEQUENCE)
        job.artifact.save("out/")
    """

    def __init__(
        self,
        session: WiggleSession,
        strategies: list[ExportStrategy] | None = None,
    ) -> None:
        self.session = session
        if strategies is None:
            strategies = [FrameSequenceExporter(), CapturedStreamExporter()]
        self.strategies: dict[ExportFormat, ExportStrategy] = {s.target: s for s in strategies}
        self.last_job: ExportJob | None = None
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def export(self, target: ExportFormat) -> ExportJob:
        """Run the *target* export.

        Raises
        ------
        ExportBusy
            If another job is still running.  The request is not queued.
        NoImagesLoaded
            If the session has no stereo pair yet.
        """
        if self._busy:
            raise ExportBusy("An export is already in progress.")
        pair = self.session.pair
        if pair is None or not pair.is_complete:
            raise NoImagesLoaded("Nothing to export: no stereo pair is loaded.")
        strategy = self.strategies.get(target)
        if strategy is None:
            raise ValueError(f"Unsupported export target: {target}")

        job = ExportJob(target=target, status=ExportStatus.RUNNING, message=strategy.running_message)
        self.last_job = job
        self._busy = True
        try:
            strategy.check_available(self.session)
            job.artifact = await strategy.export(self.session)
        except BaseException as exc:
            job.status = ExportStatus.FAILED
            job.artifact = None
            job.error = str(exc) or type(exc).__name__
            job.message = "Export failed."
            logger.warning("%s export failed: %s", target.value, job.error)
            raise
        finally:
            self._busy = False

        job.status = ExportStatus.SUCCEEDED
        job.message = strategy.done_message
        return job

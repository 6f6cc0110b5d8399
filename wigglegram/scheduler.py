"""
Animation scheduling.

The live view alternates between the left and right views at a rate of
``2 * speed_factor`` frames per second.  Timing is expressed as an
explicit, cancellable periodic task on the running asyncio loop; every
settings change goes through ``restart()``, which cancels the pending
timer outright (no drain, no partial tick), composes once with the
settings in effect at that moment and re-arms the timer.

Ticks never overlap: composition is synchronous, so a tick's work is
finished before the loop can run the next one.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
from typing import TYPE_CHECKING, Callable

from wigglegram.compositor import compose
from wigglegram.types import ActiveFrame

if TYPE_CHECKING:
    from wigglegram.session import WiggleSession

logger = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


def next_aligned_deadline(previous: float, interval_s: float, now: float) -> float:
    """First deadline on the ``previous + k * interval_s`` grid that is after *now*."""
    if previous + interval_s > now:
        return previous + interval_s
    missed = math.floor((now - previous) / interval_s)
    return previous + (missed + 1) * interval_s


class PeriodicTask:
    """Call *callback* every *interval_s* seconds on the running event loop.

    Deadlines are computed from the start time rather than from the end of
    the previous call, so the period does not drift with callback cost.
    Deadlines missed while the loop was blocked are skipped, not replayed:
    after a stall the callback runs once, then on the next aligned deadline.
    """

    def __init__(self, interval_s: float, callback: Callable[[], None]) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {interval_s}")
        self.interval_s = interval_s
        self.callback = callback
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Arm the timer.  Requires a running event loop."""
        self.stop()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(loop))

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, loop: asyncio.AbstractEventLoop) -> None:
        next_deadline = loop.time() + self.interval_s
        while True:
            await asyncio.sleep(max(0.0, next_deadline - loop.time()))
            self.callback()
            next_deadline = next_aligned_deadline(next_deadline, self.interval_s, loop.time())


class AnimationScheduler:
    """Drives periodic re-composition of the session's live surface."""

    def __init__(self, session: WiggleSession) -> None:
        self.session = session
        self._timer: PeriodicTask | None = None

    @property
    def state(self) -> SchedulerState:
        if self._timer is not None and self._timer.running:
            return SchedulerState.RUNNING
        return SchedulerState.STOPPED

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    @property
    def interval_ms(self) -> float:
        return self.session.playback.frame_interval_ms

    def start(self) -> None:
        """Cancel any running timer, draw immediately, then start ticking."""
        self.stop()
        self.render()
        interval_ms = self.interval_ms
        self._timer = PeriodicTask(interval_ms / 1000.0, self.tick)
        self._timer.start()
        logger.debug("Animation started: %.2f ms per frame", interval_ms)

    def restart(self) -> None:
        self.start()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
            logger.debug("Animation stopped")

    def render(self) -> bool:
        """Compose the current active frame onto the live surface."""
        session = self.session
        return compose(
            session.pair, session.alignment, session.state.active_frame, session.surface,
        )

    def tick(self) -> ActiveFrame:
        """Toggle the active frame and recompose."""
        frame = self.session.state.advance()
        self.render()
        return frame

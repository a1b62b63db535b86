"""The host environment: the event loop which owns the thread, and its wake sources

The scheduler never blocks. Whenever a coroutine waits for something, the scheduler
registers a one-shot callback with the host and returns; the host calls back into the
scheduler when the wait is over. A host provides three kinds of callback:

- timers, fired no earlier than some number of milliseconds from now;
- animation frames, fired before the next render of the host's display;
- posted messages, fired as soon as possible, but on a later turn of the host's loop,
  never synchronously inside the call which posted them.

TrioHost implements these on a trio nursery. Each callback runs as a task in that
nursery, so an exception raised by a callback propagates out of the nursery.

"""
from __future__ import annotations
from coswitch.coroutine import WakeSource
from coswitch.exceptions import WakeSourceUnavailable
import abc
import logging
import math
import trio
import typing as t

__all__ = [
    'Callback',
    'Host',
    'TrioHost',
    'DEFAULT_FRAME_INTERVAL',
]

logger = logging.getLogger(__name__)

Callback = t.Callable[[], None]

DEFAULT_FRAME_INTERVAL = 1/60
"Seconds between two animation frames, for a 60Hz display."

class Host:
    "The wake sources and clock the scheduler needs from its host."
    @abc.abstractmethod
    def current_time(self) -> float:
        "Return a monotonic timestamp, in seconds."
        ...

    @abc.abstractmethod
    def set_timeout(self, callback: Callback, ms: float) -> None:
        "Call `callback` once, no earlier than `ms` milliseconds from now."
        ...

    @abc.abstractmethod
    def request_animation_frame(self, callback: Callback) -> None:
        "Call `callback` once, at the next animation frame."
        ...

    @abc.abstractmethod
    def post_message(self, callback: Callback) -> None:
        "Call `callback` once, on a later turn of the host's loop."
        ...

    def supports(self, source: WakeSource) -> bool:
        "Whether this host can deliver wakeups from this source at all."
        return True

class TrioHost(Host):
    """A host running on a trio nursery.

    Animation frames come from a frame clock which ticks on multiples of
    frame_interval. We only run the frame clock while someone is waiting for a frame,
    so that an idle TrioHost has no tasks left in its nursery. If frame_interval is
    None, this host has no display, and doesn't support animation frames at all.

    """
    def __init__(self, nursery: trio.Nursery,
                 frame_interval: t.Optional[float]=DEFAULT_FRAME_INTERVAL) -> None:
        if frame_interval is not None and frame_interval <= 0:
            raise ValueError("frame interval must be positive", frame_interval)
        self.nursery = nursery
        self.frame_interval = frame_interval
        self.frame_count = 0
        self._last_frame = 0
        self._frame_callbacks: t.List[Callback] = []
        self._frame_clock_running = False

    def current_time(self) -> float:
        return trio.current_time()

    def supports(self, source: WakeSource) -> bool:
        if source is WakeSource.FRAME:
            return self.frame_interval is not None
        return True

    def set_timeout(self, callback: Callback, ms: float) -> None:
        self.nursery.start_soon(self._timeout, callback, max(ms, 0) / 1000)

    async def _timeout(self, callback: Callback, delay: float) -> None:
        await trio.sleep(delay)
        logger.debug("TrioHost._timeout(%s): firing after %ss", callback, delay)
        callback()

    def post_message(self, callback: Callback) -> None:
        # start_soon only schedules the task; it runs on a later pass of the trio loop
        self.nursery.start_soon(self._deliver, callback)

    async def _deliver(self, callback: Callback) -> None:
        logger.debug("TrioHost._deliver(%s): delivering message", callback)
        callback()

    def request_animation_frame(self, callback: Callback) -> None:
        if self.frame_interval is None:
            raise WakeSourceUnavailable("this host has no animation frames", self)
        self._frame_callbacks.append(callback)
        if not self._frame_clock_running:
            self._frame_clock_running = True
            self.nursery.start_soon(self._frame_clock)

    def _next_frame(self) -> int:
        "The index of the next frame boundary, strictly after the last one we delivered."
        assert self.frame_interval is not None
        now = trio.current_time()
        return max(self._last_frame + 1, math.floor(now / self.frame_interval) + 1)

    async def _frame_clock(self) -> None:
        assert self.frame_interval is not None
        try:
            while self._frame_callbacks:
                frame = self._next_frame()
                await trio.sleep_until(frame * self.frame_interval)
                self._last_frame = frame
                self.frame_count += 1
                # callbacks requested while running these wait for the next frame
                callbacks, self._frame_callbacks = self._frame_callbacks, []
                logger.debug("TrioHost._frame_clock: frame %d, running %d callbacks",
                             frame, len(callbacks))
                for callback in callbacks:
                    callback()
        finally:
            self._frame_clock_running = False

    def __str__(self) -> str:
        return f"TrioHost(frame_interval={self.frame_interval})"

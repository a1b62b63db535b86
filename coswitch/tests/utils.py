from __future__ import annotations
from coswitch.coroutine import WakeSource
from coswitch.exceptions import WakeSourceUnavailable
from coswitch.host import Callback, Host
import typing as t

import logging
logger = logging.getLogger(__name__)
# logging.basicConfig(level=logging.DEBUG)

class ManualHost(Host):
    """A host whose wake sources only fire when the test says so.

    Time is virtual, in milliseconds, and only moves forward through advance().

    """
    def __init__(self, frames: bool=True) -> None:
        self.frames = frames
        self.now_ms = 0.0
        self.timers: t.List[t.Tuple[float, Callback]] = []
        self.frame_callbacks: t.List[Callback] = []
        self.messages: t.List[Callback] = []

    def current_time(self) -> float:
        return self.now_ms / 1000

    def supports(self, source: WakeSource) -> bool:
        if source is WakeSource.FRAME:
            return self.frames
        return True

    def set_timeout(self, callback: Callback, ms: float) -> None:
        self.timers.append((self.now_ms + ms, callback))

    def request_animation_frame(self, callback: Callback) -> None:
        if not self.frames:
            raise WakeSourceUnavailable("no frames on this host")
        self.frame_callbacks.append(callback)

    def post_message(self, callback: Callback) -> None:
        self.messages.append(callback)

    def pending(self) -> int:
        return len(self.timers) + len(self.frame_callbacks) + len(self.messages)

    def fire_frame(self) -> None:
        callbacks, self.frame_callbacks = self.frame_callbacks, []
        for callback in callbacks:
            callback()

    def fire_messages(self) -> None:
        callbacks, self.messages = self.messages, []
        for callback in callbacks:
            callback()

    def advance(self, ms: float) -> None:
        "Move time forward by ms, firing due timers in deadline order."
        target = self.now_ms + ms
        while True:
            due = sorted((timer for timer in self.timers if timer[0] <= target),
                         key=lambda timer: timer[0])
            if not due:
                break
            deadline, callback = due[0]
            self.timers.remove(due[0])
            self.now_ms = max(self.now_ms, deadline)
            callback()
        self.now_ms = target

def flatten_exceptions(exc: BaseException) -> t.List[BaseException]:
    "Return the leaf exceptions of a (possibly nested) exception group."
    if isinstance(exc, BaseExceptionGroup):
        return [leaf for inner in exc.exceptions for leaf in flatten_exceptions(inner)]
    return [exc]

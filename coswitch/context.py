"""Capturing and replaying a coroutine's call chain

Every coroutine runs on its own greenlet, so its call chain lives on a stack of its
own. "Unwinding" a suspended coroutine is just switching away from its greenlet, back
to the greenlet running the dispatcher (the "hub"); the coroutine's frames stay where
they are. "Rewinding" is switching back into the coroutine's greenlet, at which point
the switch that unwound it returns, with every local variable as it was.

We don't pass values through the switches. Everything the dispatcher needs to know,
namely the coroutine's wake state and which coroutine is current, is written to the
Coroutine object before switching.

"""
from __future__ import annotations
from coswitch.coroutine import Coroutine, WakeState
import greenlet
import logging
import outcome
import typing as t

if t.TYPE_CHECKING:
    from coswitch.scheduler import Scheduler

__all__ = [
    'CoroutineGreenlet',
    'current_context',
    'enter',
    'unwind',
    'rewind',
]

logger = logging.getLogger(__name__)

class CoroutineGreenlet(greenlet.greenlet):
    "The greenlet carrying a single coroutine's call chain."
    def __init__(self, scheduler: Scheduler, coroutine: Coroutine, parent: greenlet.greenlet) -> None:
        super().__init__(self._body, parent)
        self.scheduler = scheduler
        self.coroutine = coroutine

    def _body(self) -> None:
        coro = self.coroutine
        logger.debug("CoroutineGreenlet(%s): calling entry function", coro.name)
        assert coro.entry is not None
        coro.result = outcome.capture(coro.entry, coro.user_data)
        logger.debug("CoroutineGreenlet(%s): entry function finished with %s", coro.name, coro.result)
        coro.wake_state = WakeState.ENDED
        # returning switches back to our parent, the hub

def current_context() -> t.Optional[CoroutineGreenlet]:
    "Return the greenlet of the coroutine we're running in, or None if we're not in one."
    current = greenlet.getcurrent()
    if isinstance(current, CoroutineGreenlet):
        return current
    return None

def enter(scheduler: Scheduler, coroutine: Coroutine, hub: greenlet.greenlet) -> None:
    """Start a fresh call chain at coroutine.entry(coroutine.user_data).

    Returns when the coroutine suspends or its entry function finishes.

    """
    if coroutine.context is not None:
        raise Exception("coroutine has already been entered", coroutine)
    coroutine.context = CoroutineGreenlet(scheduler, coroutine, hub)
    coroutine.context.switch()

def rewind(coroutine: Coroutine, hub: greenlet.greenlet) -> None:
    """Continue a suspended coroutine right after the call that unwound it.

    Returns when the coroutine suspends again or its entry function finishes.

    """
    glet = coroutine.context
    if glet is None or glet.dead:
        raise Exception("coroutine has no suspended call chain to rewind", coroutine)
    # the hub may be a different greenlet each time the host calls the dispatcher;
    # when the entry function returns, control has to go back to the current one.
    if glet.parent is not hub:
        glet.parent = hub
    glet.switch()

def unwind(hub: greenlet.greenlet) -> None:
    """Suspend the running coroutine, handing control back to the hub.

    Returns when the dispatcher rewinds this coroutine.

    """
    hub.switch()

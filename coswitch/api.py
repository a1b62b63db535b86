"""Blocking-style functions for code running inside a coroutine, and the trio entry point

Code running in a coroutine doesn't need a reference to its Scheduler to suspend; these
functions find the scheduler of the coroutine they're called from. Called from
anywhere else, including from the host's own code outside every coroutine, they raise
NotInCoroutineError.

"""
from __future__ import annotations
from coswitch.context import current_context
from coswitch.coroutine import Coroutine, EntryFunction, WakeState
from coswitch.exceptions import NotInCoroutineError, SchedulerStalled
from coswitch.host import DEFAULT_FRAME_INTERVAL, TrioHost
from coswitch.memory import AllocatorInterface
from coswitch.scheduler import Scheduler
import functools
import logging
import trio
import typing as t

__all__ = [
    'current_scheduler',
    'current_coroutine',
    'switch_to',
    'yield_',
    'wait_animation_frame',
    'sleep',
    'blocking_sleep',
    'run',
    'run_async',
]

logger = logging.getLogger(__name__)

def current_scheduler() -> Scheduler:
    "Return the scheduler running the calling coroutine."
    glet = current_context()
    if glet is None:
        raise NotInCoroutineError("not running inside a coroutine")
    return glet.scheduler

def current_coroutine() -> Coroutine:
    "Return the calling coroutine."
    glet = current_context()
    if glet is None:
        raise NotInCoroutineError("not running inside a coroutine")
    return glet.coroutine

def switch_to(target: t.Optional[Coroutine]) -> None:
    "Switch to target, or to the main coroutine if target is None; see Scheduler.switch_to."
    current_scheduler().switch_to(target)

def yield_() -> None:
    current_scheduler().yield_()

def wait_animation_frame() -> None:
    current_scheduler().wait_animation_frame()

def sleep(ms: float) -> None:
    current_scheduler().sleep(ms)

def blocking_sleep(seconds: float) -> None:
    """Like time.sleep, but lets the host run while we wait.

    Must be called from inside a coroutine; see Scheduler.blocking_sleep.

    """
    current_scheduler().blocking_sleep(seconds)

async def run_async(main: EntryFunction, user_data: t.Any=None, *,
                    frame_interval: t.Optional[float]=DEFAULT_FRAME_INTERVAL,
                    allocator: t.Optional[AllocatorInterface]=None) -> t.Any:
    """Run main(user_data) as the main coroutine of a new scheduler on a TrioHost.

    We return main's return value once the host has no wakeups left to deliver, which
    is to say, once every coroutine has either ended or been left suspended with
    nothing that will ever resume it. If at that point the main coroutine hasn't
    ended, we raise SchedulerStalled.

    """
    async with trio.open_nursery() as nursery:
        host = TrioHost(nursery, frame_interval)
        scheduler = Scheduler(host, allocator)
        logger.debug("run_async(%s): starting main coroutine", main)
        scheduler.start(main, user_data)
    if scheduler.main.wake_state is not WakeState.ENDED:
        raise SchedulerStalled("host went idle with the main coroutine suspended", scheduler.main)
    assert scheduler.main.result is not None
    return scheduler.main.result.unwrap()

def run(main: EntryFunction, user_data: t.Any=None, *,
        frame_interval: t.Optional[float]=DEFAULT_FRAME_INTERVAL,
        allocator: t.Optional[AllocatorInterface]=None,
        clock: t.Optional[trio.abc.Clock]=None) -> t.Any:
    "Run main(user_data) as the main coroutine under trio.run; see run_async."
    return trio.run(functools.partial(
        run_async, main, user_data, frame_interval=frame_interval, allocator=allocator),
                    clock=clock)

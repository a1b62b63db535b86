"""The scheduler: creating coroutines, switching between them, and dispatching wakeups

A Scheduler owns a set of coroutines, one of which is always "current". Only the
current coroutine can run, and it runs until it calls one of the suspend operations:

- switch_to, which makes another coroutine current;
- yield_, which waits for the host to take one more turn of its loop;
- wait_animation_frame, which waits for the host's next frame;
- sleep, which waits for a number of milliseconds.

Each of these records why the coroutine stopped in its wake state, then unwinds the
coroutine back to the dispatcher, which returns control to the host. When the host
calls the dispatcher again, the dispatcher looks at the current coroutine's wake state
to decide whether to rewind it, or to arm a wake source and go back to waiting.

A coroutine whose entry function returns stays current, and the dispatcher stops
there; nothing else runs until the host picks a new current coroutine with
Scheduler.resume.

The scheduler has no global state; make as many as you like. The program's own
entry point is the "main" coroutine, created with the Scheduler and started with
Scheduler.start.

"""
from __future__ import annotations
from coswitch.context import CoroutineGreenlet, current_context
from coswitch.coroutine import Coroutine, EntryFunction, Wake, WakeSource, WakeState
from coswitch.exceptions import (
    CoroutineError, NotInCoroutineError, PrematureFreeError, ReentrantDispatchError,
    UseAfterEndError, WakeSourceUnavailable,
)
from coswitch.host import Host
from coswitch.memory import AllocatorInterface, BumpAllocator, OutOfSpaceError, UseAfterFreeError
import coswitch.context as context
import functools
import greenlet
import logging
import outcome
import typing as t

__all__ = [
    'Scheduler',
    'DEFAULT_STACK_SIZE',
    'SLEEP_GUARD',
    'SLEEP_SLACK',
]

logger = logging.getLogger(__name__)

DEFAULT_STACK_SIZE = 64*1024
"Stack size, in bytes, for coroutines created without an explicit size."

SLEEP_GUARD = 0.0045
"Below this many seconds left, blocking_sleep stops using timers and just yields."

SLEEP_SLACK = 0.0005
"How much earlier than the deadline blocking_sleep asks its timers to fire, in seconds."

class Scheduler:
    def __init__(self, host: Host, allocator: t.Optional[AllocatorInterface]=None,
                 default_stack_size: int=DEFAULT_STACK_SIZE) -> None:
        if default_stack_size <= 0:
            raise ValueError("default stack size must be positive", default_stack_size)
        self.host = host
        self.allocator = allocator if allocator is not None else BumpAllocator()
        self.default_stack_size = default_stack_size
        self.main = Coroutine("main", None, None, None, wake_state=WakeState.ENDED)
        self._current = self.main
        self._coroutines: t.List[Coroutine] = []
        self._hub: t.Optional[greenlet.greenlet] = None

    @property
    def current(self) -> Coroutine:
        "The coroutine which is running, or which will run when the dispatcher is next called."
        return self._current

    @property
    def coroutines(self) -> t.List[Coroutine]:
        "All coroutines created and not yet freed, not including main."
        return list(self._coroutines)

    #### creating and freeing coroutines
    def create(self, entry: EntryFunction, user_data: t.Any=None,
               stack_size: int=0, name: t.Optional[str]=None) -> t.Optional[Coroutine]:
        """Create a coroutine which will call entry(user_data) when first switched to.

        A stack_size of 0 selects the default stack size. Returns None if the stack
        couldn't be allocated.

        """
        if stack_size < 0:
            raise ValueError("stack size must be non-negative", stack_size)
        size = stack_size or self.default_stack_size
        if name is None:
            name = getattr(entry, '__name__', repr(entry))
        try:
            stack = self.allocator.allocate(size)
        except OutOfSpaceError:
            logger.warning("Scheduler.create(%s): couldn't allocate %d byte stack", name, size)
            return None
        coro = Coroutine(name, entry, user_data, stack)
        self._coroutines.append(coro)
        logger.debug("Scheduler.create(%s): created with stack %s", name, stack)
        return coro

    def free(self, coro: Coroutine) -> None:
        "Release the stack of a coroutine which has ended or was never entered."
        if coro is self.main:
            raise ValueError("the main coroutine can't be freed")
        if coro.freed:
            raise UseAfterFreeError("coroutine has already been freed", coro)
        if coro not in self._coroutines:
            raise ValueError("coroutine belongs to a different scheduler", coro)
        if coro.wake_state not in (WakeState.ENDED, WakeState.ENTERING):
            raise PrematureFreeError("coroutine still has a live call chain", coro)
        logger.debug("Scheduler.free(%s): releasing stack %s", coro.name, coro.stack)
        assert coro.stack is not None
        coro.stack.free()
        coro.freed = True
        self._coroutines.remove(coro)

    #### the dispatcher
    def start(self, entry: EntryFunction, user_data: t.Any=None) -> None:
        "Run entry(user_data) as the main coroutine, until it first suspends."
        if self.main.entry is not None:
            raise Exception("scheduler has already been started", self)
        self.main.entry = entry
        self.main.user_data = user_data
        self.main.wake_state = WakeState.ENTERING
        self._current = self.main
        self.dispatch()

    def dispatch(self, wake: t.Optional[Wake]=None) -> None:
        """Run the current coroutine, if it's runnable, until the scheduler has nothing left to do.

        The host calls this with the Wake it was given when a wake source fires.
        Returns when the current coroutine either ends, or starts waiting on a wake
        source which hasn't fired yet.

        """
        if self._hub is not None:
            raise ReentrantDispatchError("dispatcher is already running", self)
        if current_context() is not None:
            raise ReentrantDispatchError("dispatcher can't be called from a coroutine", self)
        self._hub = greenlet.getcurrent()
        try:
            while True:
                coro = self._current
                state = coro.wake_state
                if state is WakeState.ENDED:
                    logger.debug("Scheduler.dispatch(%s): %s has ended, nothing to do", wake, coro.name)
                    return
                source = state.wake_source()
                if source is not None:
                    if coro.pending_wake is None:
                        self._arm(coro, source)
                        return
                    if wake is not coro.pending_wake:
                        logger.debug("Scheduler.dispatch(%s): %s is waiting for %s, ignoring",
                                     wake, coro.name, coro.pending_wake)
                        return
                    coro.pending_wake = None
                    # the wake is consumed; anything after this rewind needs its own
                    wake = None
                    self._rewind(coro)
                elif state is WakeState.ENTERING:
                    self._enter(coro)
                elif state is WakeState.RESUMING:
                    self._rewind(coro)
                else:
                    raise Exception("current coroutine is in an unexpected state", coro)
                if coro.wake_state is WakeState.ENDED and isinstance(coro.result, outcome.Error):
                    logger.debug("Scheduler.dispatch: %s raised, propagating to the host", coro.name)
                    coro.result.unwrap()
        finally:
            self._hub = None

    def resume(self, target: t.Optional[Coroutine]=None) -> None:
        """Make target current and dispatch into it; None means the main coroutine.

        When a coroutine's entry function returns, it stays current, and the dispatcher
        has nothing left to run; everything else stays parked where it was. This is how
        the host picks which coroutine runs next in that case. It's only allowed once
        the current coroutine has ended, since otherwise the current coroutine would be
        left waiting with nothing to ever resume it.

        """
        if self._hub is not None or current_context() is not None:
            raise ReentrantDispatchError("resume must be called by the host, not a coroutine", self)
        if self._current.wake_state is not WakeState.ENDED:
            raise CoroutineError("the current coroutine hasn't ended", self._current)
        target = self._check_target(target)
        logger.debug("Scheduler.resume(%s): %s has ended, moving on", target.name, self._current.name)
        self._current = target
        self.dispatch()

    def _enter(self, coro: Coroutine) -> None:
        logger.debug("Scheduler._enter(%s): first entry", coro.name)
        assert self._hub is not None
        coro.wake_state = WakeState.RUNNING
        context.enter(self, coro, self._hub)

    def _rewind(self, coro: Coroutine) -> None:
        logger.debug("Scheduler._rewind(%s): resuming", coro.name)
        assert self._hub is not None
        coro.wake_state = WakeState.RUNNING
        context.rewind(coro, self._hub)

    def _arm(self, coro: Coroutine, source: WakeSource) -> None:
        wake = Wake(coro, source)
        callback = functools.partial(self.dispatch, wake)
        logger.debug("Scheduler._arm(%s): arming %s", coro.name, wake)
        if source is WakeSource.FRAME:
            self.host.request_animation_frame(callback)
        elif source is WakeSource.IMMEDIATE:
            self.host.post_message(callback)
        elif source is WakeSource.TIMER:
            self.host.set_timeout(callback, coro.sleep_ms)
        else:
            raise Exception("unknown wake source", source)
        # only once the host has taken the callback; otherwise the next dispatch re-arms
        coro.pending_wake = wake

    #### suspend operations
    def _running_coroutine(self) -> t.Tuple[Coroutine, greenlet.greenlet]:
        glet = current_context()
        if glet is None or glet.scheduler is not self:
            raise NotInCoroutineError("must be called from a coroutine of this scheduler", self)
        assert self._hub is not None
        assert glet.coroutine is self._current
        return glet.coroutine, self._hub

    def _suspend(self, state: WakeState, sleep_ms: float=0,
                 target: t.Optional[Coroutine]=None) -> None:
        coro, hub = self._running_coroutine()
        source = state.wake_source()
        if source is not None and not self.host.supports(source):
            raise WakeSourceUnavailable("host can't deliver this kind of wakeup", source, self.host)
        coro.wake_state = state
        coro.sleep_ms = sleep_ms
        if target is not None:
            self._current = target
        logger.debug("Scheduler._suspend(%s): unwinding with %s", coro.name, state)
        context.unwind(hub)
        logger.debug("Scheduler._suspend(%s): rewound", coro.name)

    def _check_target(self, target: t.Optional[Coroutine]) -> Coroutine:
        if target is None:
            return self.main
        if target.freed:
            raise UseAfterFreeError("can't switch to a freed coroutine", target)
        if target is not self.main and target not in self._coroutines:
            raise ValueError("coroutine belongs to a different scheduler", target)
        if target.wake_state is WakeState.ENDED:
            raise UseAfterEndError("can't switch to a coroutine which has ended", target)
        return target

    def switch_to(self, target: t.Optional[Coroutine]) -> None:
        """Suspend the running coroutine and make target current; None means the main coroutine.

        Returns when something switches back to the running coroutine.

        """
        self._running_coroutine()
        self._suspend(WakeState.RESUMING, target=self._check_target(target))

    def yield_(self) -> None:
        "Give control back to the host, and resume as soon as it's taken another turn."
        self._suspend(WakeState.WAITING_FOR_YIELD)

    def wait_animation_frame(self) -> None:
        "Give control back to the host, and resume at its next animation frame."
        self._suspend(WakeState.WAITING_FOR_FRAME)

    def sleep(self, ms: float) -> None:
        "Give control back to the host, and resume after at least ms milliseconds."
        self._suspend(WakeState.SLEEPING, sleep_ms=max(ms, 0))

    def blocking_sleep(self, seconds: float) -> None:
        """Suspend the running coroutine for `seconds`, as accurately as the host allows.

        Host timers are coarse and may fire late, so we only use them while the
        deadline is comfortably far off, asking them to fire a little early. The rest
        of the wait is spent yielding to the host until the deadline has passed.

        """
        if seconds < 0:
            raise ValueError("sleep length must be non-negative")
        # check before reading the clock, so misuse fails the same way on every host
        self._running_coroutine()
        now = self.host.current_time()
        deadline = now + seconds
        while now < deadline:
            remaining = deadline - now
            if remaining > SLEEP_GUARD:
                self.sleep(int((remaining - SLEEP_SLACK) * 1000))
            else:
                self.yield_()
            now = self.host.current_time()

    def __str__(self) -> str:
        return f"Scheduler({self.host}, current={self._current.name})"

    def __repr__(self) -> str:
        return str(self)

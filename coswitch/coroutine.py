"The coroutine control block: what the scheduler knows about each coroutine."
from __future__ import annotations
from dataclasses import dataclass, field
from coswitch.memory import StackAllocation
import enum
import outcome
import typing as t

if t.TYPE_CHECKING:
    from coswitch.context import CoroutineGreenlet

__all__ = [
    'WakeState',
    'WakeSource',
    'Wake',
    'Coroutine',
    'EntryFunction',
]

EntryFunction = t.Callable[[t.Any], t.Any]
"A coroutine's entry function; called once, with the coroutine's user_data."

class WakeState(enum.Enum):
    """Why a coroutine isn't running, which tells the dispatcher what to do with it.

    RUNNING is the coroutine whose call chain is live right now; there's at most one.

    """
    ENDED = "ended"
    ENTERING = "entering"
    RESUMING = "resuming"
    WAITING_FOR_FRAME = "waiting_for_frame"
    WAITING_FOR_YIELD = "waiting_for_yield"
    SLEEPING = "sleeping"
    RUNNING = "running"

    def wake_source(self) -> t.Optional[WakeSource]:
        "The host wake source this state waits on, if any."
        return _WAKE_SOURCES.get(self)

class WakeSource(enum.Enum):
    "The kinds of wakeups a host delivers."
    FRAME = "frame"
    IMMEDIATE = "immediate"
    TIMER = "timer"

_WAKE_SOURCES = {
    WakeState.WAITING_FOR_FRAME: WakeSource.FRAME,
    WakeState.WAITING_FOR_YIELD: WakeSource.IMMEDIATE,
    WakeState.SLEEPING: WakeSource.TIMER,
}

@dataclass(eq=False)
class Wake:
    """A single armed wake source, waiting to fire for a single coroutine.

    The dispatcher hands one of these to the host with each callback it registers,
    and only resumes the coroutine when the callback carrying the coroutine's
    current Wake fires; anything else is a stale or foreign wakeup.

    """
    coroutine: Coroutine
    source: WakeSource

    def __str__(self) -> str:
        return f"Wake({self.coroutine.name}, {self.source.value})"

@dataclass(eq=False)
class Coroutine:
    """A coroutine: an entry function, its user data, its stack, and its wake state.

    Created by Scheduler.create and released by Scheduler.free; the main coroutine is
    created along with its Scheduler and has no stack allocation of its own.

    """
    name: str
    entry: t.Optional[EntryFunction]
    user_data: t.Any
    stack: t.Optional[StackAllocation]
    wake_state: WakeState = WakeState.ENTERING
    sleep_ms: float = 0
    result: t.Optional[outcome.Outcome] = None
    freed: bool = False
    context: t.Optional[CoroutineGreenlet] = field(default=None, repr=False)
    pending_wake: t.Optional[Wake] = field(default=None, repr=False)

    @property
    def stack_base(self) -> t.Optional[int]:
        "Lowest address of the stack region; raises UseAfterFreeError once freed."
        return self.stack.bounds()[0] if self.stack else None

    @property
    def stack_limit(self) -> t.Optional[int]:
        return self.stack.bounds()[1] if self.stack else None

    def __str__(self) -> str:
        if self.wake_state is WakeState.SLEEPING:
            return f"Coroutine({self.name}, sleeping {self.sleep_ms}ms)"
        return f"Coroutine({self.name}, {self.wake_state.value})"

"Errors raised by the coroutine scheduler."

class CoroutineError(Exception):
    "Base class for misuse of coroutines or of the scheduler."
    pass

class UseAfterEndError(CoroutineError):
    """Raised when switching into a coroutine whose entry function has already returned.

    There's no call chain left to resume, so there's nothing sensible to do but refuse.

    """
    pass

class PrematureFreeError(CoroutineError):
    """Raised when freeing a coroutine which still has a live call chain on its stack.

    Only coroutines which have ended, or which were never entered, can be freed.

    """
    pass

class WakeSourceUnavailable(CoroutineError):
    """The host can't deliver the kind of wakeup a coroutine asked to wait for.

    We fail loudly instead of degrading, since the waiting coroutine would
    otherwise never be resumed.

    """
    pass

class NotInCoroutineError(CoroutineError):
    "A suspend operation was called from outside any coroutine of the scheduler."
    pass

class ReentrantDispatchError(CoroutineError):
    "Scheduler.dispatch was called from inside a coroutine, or while already dispatching."
    pass

class SchedulerStalled(CoroutineError):
    "The host ran out of pending wakeups while the main coroutine was still suspended."
    pass

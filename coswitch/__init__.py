"""Blocking-style coroutines on top of a cooperative host event loop

Some code is much easier to write as if it could block:

```
def animate(sprite):
  while sprite.visible:
    sprite.step()
    coswitch.wait_animation_frame()
```

But when that code runs inside a host event loop, which owns the only thread and needs
it back regularly to deliver timers, render frames and handle input, actually
blocking would freeze the whole host. The usual alternative is to turn the code inside
out into callbacks registered with the host.

We take a third option. Each piece of blocking-style code runs as a coroutine, on a
stack of its own (a greenlet). When it "blocks", in `sleep`, `yield_`, or
`wait_animation_frame`, its call chain is set aside, a one-shot callback is registered
with the host, and control goes back to the host's loop. When the callback fires, the
dispatcher puts the call chain back exactly as it was and the coroutine carries on from
where it stopped. The coroutine can't tell the difference from having blocked, except
that time has passed and other things have happened in the meantime.

Switching between coroutines is always explicit. Exactly one coroutine is current at any
time, and control only passes to another one through `switch_to`. There's no
preemption and no priorities; a coroutine which never suspends runs to completion
without anything else getting a look in.

The host is an object implementing `Host`; `TrioHost` runs on a trio nursery, and `run`
sets everything up under `trio.run`:

```
def main(_):
  worker = coswitch.current_scheduler().create(animate, sprite)
  coswitch.switch_to(worker)
  ...

coswitch.run(main)
```

"""
from coswitch.api import (
    current_scheduler, current_coroutine, switch_to, yield_, wait_animation_frame,
    sleep, blocking_sleep, run, run_async,
)
from coswitch.coroutine import Coroutine, WakeState, WakeSource, Wake
from coswitch.exceptions import (
    CoroutineError, UseAfterEndError, PrematureFreeError, WakeSourceUnavailable,
    NotInCoroutineError, ReentrantDispatchError, SchedulerStalled,
)
from coswitch.host import Host, TrioHost, DEFAULT_FRAME_INTERVAL
from coswitch.memory import AllocatorInterface, BumpAllocator, StackAllocation, OutOfSpaceError, UseAfterFreeError
from coswitch.scheduler import Scheduler, DEFAULT_STACK_SIZE

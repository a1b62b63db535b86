"""Allocation of stack regions for coroutines.

Each coroutine owns one fixed-size region, which is its stack budget for its whole
lifetime. Nothing here is actually specific to stacks; the allocator hands out
non-overlapping ranges of some address space, and takes them back when they're freed.

The allocations are kept in a doubly-linked list, in address order, with a "finger"
node marking where the next allocation will be attempted.

"""
from __future__ import annotations
from coswitch.exceptions import CoroutineError
from dataclasses import dataclass
import abc
import typing as t

DEFAULT_ALIGNMENT = 16

class UseAfterFreeError(CoroutineError):
    "Raised when a freed stack region, or the coroutine that owned it, is used again."
    pass

class OutOfSpaceError(Exception):
    "Raised by allocate if the allocation request couldn't be satisfied."
    pass

@dataclass(eq=False)
class ListStart:
    next: StackAllocation | Finger | ListEnd

    @property
    def end(self) -> int:
        return 0

@dataclass(eq=False)
class ListEnd:
    prev: StackAllocation | Finger | ListStart
    start: int

@dataclass(eq=False)
class Finger:
    prev: StackAllocation | ListStart
    next: StackAllocation | ListEnd

    def alloc_before(self, size: int, alignment: int) -> StackAllocation:
        start_ptr = align(self.prev.end, alignment)
        end_ptr = start_ptr + size
        if end_ptr > self.next.start:
            raise OutOfSpaceError()
        return StackAllocation.add_after(start_ptr, end_ptr, self.prev)

    def move_to_after(self, node: StackAllocation | ListStart) -> None:
        assert not isinstance(node.next, Finger), f"{node}, {self}"
        # remove from old position
        self.prev.next = self.next
        self.next.prev = self.prev
        # insert into new position
        self.next = node.next
        self.prev = node
        self.next.prev = self
        self.prev.next = self

def make_list(size: int) -> t.Tuple[ListStart, Finger, ListEnd]:
    head = ListStart(t.cast(ListEnd, None))
    tail = ListEnd(head, size)
    head.next = tail
    finger = Finger(head, tail)
    finger.prev.next = finger
    finger.next.prev = finger
    return head, finger, tail

# Two zero-length regions at the same address are still distinct regions, so eq=False.
@dataclass(eq=False)
class StackAllocation:
    """A region [start, end) handed out by some allocator.

    `start` and `end` are the base and limit of a coroutine's stack. Once freed, the
    region may be handed out again, so bounds() refuses to answer.

    """
    start: int
    end: int
    prev: StackAllocation | Finger | ListStart
    next: StackAllocation | Finger | ListEnd
    valid: bool = True

    def bounds(self) -> t.Tuple[int, int]:
        if not self.valid:
            raise UseAfterFreeError("stack region has been freed", self)
        return self.start, self.end

    def free(self) -> None:
        if not self.valid:
            raise UseAfterFreeError("stack region has already been freed", self)
        self.valid = False
        self.prev.next = self.next
        self.next.prev = self.prev

    def size(self) -> int:
        return self.end - self.start

    @staticmethod
    def add_after(start: int, end: int, prev: StackAllocation | Finger | ListStart) -> StackAllocation:
        self = StackAllocation(start, end, prev, prev.next)
        self.prev.next = self
        self.next.prev = self
        return self

    def __str__(self) -> str:
        if self.valid:
            return f"Stack({self.start}, {self.end})"
        else:
            return f"Stack(FREED, {self.start}, {self.end})"

    def __repr__(self) -> str:
        return str(self)

def align(num: int, alignment: int) -> int:
    """Return the lowest value greater than or equal to `num` that is cleanly divisible by `alignment`.

    When applied to an address, this returns the next address that is aligned to this
    alignment.

    """
    overhang = (num % alignment)
    if overhang > 0:
        return num + (alignment - overhang)
    else:
        return num

class AllocatorInterface:
    "An allocator of stack regions; raises OutOfSpaceError if there's no more space."
    @abc.abstractmethod
    def allocate(self, size: int, alignment: int=DEFAULT_ALIGNMENT) -> StackAllocation: ...

    @abc.abstractmethod
    def outstanding(self) -> t.List[StackAllocation]:
        "Return all the allocations which haven't been freed yet, in address order."
        ...

class BumpAllocator(AllocatorInterface):
    """A simple bump allocator over a fixed-size address range.

    We increment an allocation pointer (the finger) through the range as new
    allocation requests come in. When we reach the end of the range, we wrap around
    back to the start, skipping over space which is still in use.

    Since coroutine stacks tend to be allocated and freed in roughly the same order,
    the space behind the finger is usually free again by the time we wrap around.

    """
    def __init__(self, capacity: int=2**32) -> None:
        if capacity < 0:
            raise ValueError("allocator capacity must be non-negative", capacity)
        self.capacity = capacity
        self.start, self.finger, self.end = make_list(capacity)

    def allocate(self, size: int, alignment: int=DEFAULT_ALIGNMENT) -> StackAllocation:
        if size < 0:
            raise ValueError("allocation size must be non-negative", size)
        search_start = self.finger.prev
        while True:
            try:
                return self.finger.alloc_before(size, alignment)
            except OutOfSpaceError:
                # move the finger forward, wrapping around back to the start if we hit the end;
                # stop searching if we're back where we started
                if isinstance(self.finger.next, ListEnd):
                    if search_start is self.start:
                        raise OutOfSpaceError("no free range of this size", size, self)
                    self.finger.move_to_after(self.start)
                elif self.finger.next is search_start:
                    raise OutOfSpaceError("no free range of this size", size, self)
                else:
                    self.finger.move_to_after(self.finger.next)

    def outstanding(self) -> t.List[StackAllocation]:
        ret: t.List[StackAllocation] = []
        node = self.start.next
        while not isinstance(node, ListEnd):
            if isinstance(node, StackAllocation):
                ret.append(node)
            node = node.next
        return ret

    def __str__(self) -> str:
        return f"BumpAllocator({self.capacity})"

    def __repr__(self) -> str:
        return str(self)

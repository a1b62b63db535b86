from __future__ import annotations
import unittest

from coswitch.memory import BumpAllocator, OutOfSpaceError, UseAfterFreeError, align

class TestAllocator(unittest.TestCase):
    def test_align(self) -> None:
        self.assertEqual(align(0, 16), 0)
        self.assertEqual(align(1, 16), 16)
        self.assertEqual(align(16, 16), 16)
        self.assertEqual(align(17, 16), 32)

    def test_out_of_space(self) -> None:
        size = 4096
        allocator = BumpAllocator(size)
        first = allocator.allocate(size//2)
        second = allocator.allocate(size//2)
        with self.assertRaises(OutOfSpaceError):
            allocator.allocate(size//2)
        self.assertEqual(allocator.outstanding(), [first, second])
        first.free()
        # the finger wraps around to the space freed at the start
        third = allocator.allocate(size//2)
        self.assertEqual(third.start, 0)
        self.assertEqual(allocator.outstanding(), [third, second])

    def test_empty_allocator_too_small(self) -> None:
        allocator = BumpAllocator(100)
        with self.assertRaises(OutOfSpaceError):
            allocator.allocate(200)
        self.assertEqual(allocator.outstanding(), [])

    def test_no_overlap(self) -> None:
        allocator = BumpAllocator(10000)
        allocs = [allocator.allocate(100 + i) for i in range(20)]
        for alloc in allocs[::3]:
            alloc.free()
        allocs = [alloc for alloc in allocs if alloc.valid]
        allocs.extend(allocator.allocate(50) for _ in range(10))
        ranges = sorted((alloc.start, alloc.end) for alloc in allocs)
        for (_, prev_end), (next_start, _) in zip(ranges, ranges[1:]):
            self.assertLessEqual(prev_end, next_start)
        for alloc in allocs:
            self.assertEqual(alloc.start % 16, 0)

    def test_use_after_free(self) -> None:
        allocator = BumpAllocator(4096)
        alloc = allocator.allocate(128)
        self.assertEqual(alloc.bounds(), (0, 128))
        self.assertEqual(alloc.size(), 128)
        alloc.free()
        with self.assertRaises(UseAfterFreeError):
            alloc.bounds()
        with self.assertRaises(UseAfterFreeError):
            alloc.free()
        self.assertEqual(allocator.outstanding(), [])
        # the failed second free left the list alone, so the space is reused
        again = allocator.allocate(128)
        self.assertEqual(again.bounds(), (0, 128))
        self.assertEqual(allocator.outstanding(), [again])

    def test_negative_size(self) -> None:
        with self.assertRaises(ValueError):
            BumpAllocator(4096).allocate(-1)

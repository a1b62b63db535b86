from __future__ import annotations
import trio
import trio.testing
import typing as t

from coswitch.coroutine import WakeSource
from coswitch.exceptions import WakeSourceUnavailable
from coswitch.host import DEFAULT_FRAME_INTERVAL, TrioHost
from coswitch.tests.trio_test_case import TrioTestCase

class TestTrioHost(TrioTestCase):
    def make_clock(self) -> trio.testing.MockClock:
        return trio.testing.MockClock(autojump_threshold=0)

    async def asyncSetUp(self) -> None:
        self.host = TrioHost(self.nursery)

    async def test_timeout_not_early(self) -> None:
        fired = trio.Event()
        times: t.List[float] = []
        def callback() -> None:
            times.append(self.host.current_time())
            fired.set()
        start = self.host.current_time()
        self.host.set_timeout(callback, 250)
        await fired.wait()
        self.assertGreaterEqual(times[0] - start, 0.25)

    async def test_negative_timeout(self) -> None:
        fired = trio.Event()
        self.host.set_timeout(fired.set, -5)
        await fired.wait()

    async def test_post_message_not_synchronous(self) -> None:
        fired = trio.Event()
        self.host.post_message(fired.set)
        self.assertFalse(fired.is_set())
        await fired.wait()

    async def test_frames(self) -> None:
        done = trio.Event()
        times: t.List[float] = []
        def callback() -> None:
            times.append(self.host.current_time())
            if len(times) < 4:
                self.host.request_animation_frame(callback)
            else:
                done.set()
        self.host.request_animation_frame(callback)
        await done.wait()
        self.assertEqual(self.host.frame_count, 4)
        for prev, next in zip(times, times[1:]):
            self.assertAlmostEqual(next - prev, DEFAULT_FRAME_INTERVAL)
        # nobody is waiting for a frame anymore, so the frame clock stops
        await trio.testing.wait_all_tasks_blocked()
        self.assertFalse(self.host._frame_clock_running)

    async def test_frame_callbacks_share_a_frame(self) -> None:
        done = trio.Event()
        times: t.List[float] = []
        def callback() -> None:
            times.append(self.host.current_time())
            if len(times) == 3:
                done.set()
        for _ in range(3):
            self.host.request_animation_frame(callback)
        await done.wait()
        self.assertEqual(self.host.frame_count, 1)
        self.assertEqual(len(set(times)), 1)

    async def test_no_frames(self) -> None:
        host = TrioHost(self.nursery, frame_interval=None)
        self.assertFalse(host.supports(WakeSource.FRAME))
        self.assertTrue(host.supports(WakeSource.TIMER))
        self.assertTrue(host.supports(WakeSource.IMMEDIATE))
        with self.assertRaises(WakeSourceUnavailable):
            host.request_animation_frame(lambda: None)

    async def test_bad_frame_interval(self) -> None:
        with self.assertRaises(ValueError):
            TrioHost(self.nursery, frame_interval=0)

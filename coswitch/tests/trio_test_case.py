"A trio-enabled variant of unittest.TestCase"
import trio
import unittest
import functools
import inspect
import typing as t

class TrioTestCase(unittest.TestCase):
    """A trio-enabled variant of unittest.TestCase

    Each async test method runs under its own call to trio.run, inside a nursery which
    is cancelled once the test is done. Override make_clock to run the test on some
    other clock, such as trio.testing.MockClock.

    """
    nursery: trio.Nursery

    async def asyncSetUp(self) -> None:
        pass

    async def asyncTearDown(self) -> None:
        pass

    def make_clock(self) -> t.Optional[trio.abc.Clock]:
        return None

    def __init__(self, methodName='runTest') -> None:
        test = getattr(type(self), methodName, None)
        if inspect.iscoroutinefunction(test):
            self._wrap_async_test(methodName, test)
        super().__init__(methodName)

    def _wrap_async_test(self, methodName: str, test: t.Callable[..., t.Awaitable[None]]) -> None:
        @functools.wraps(test)
        async def test_with_setup() -> None:
            async with trio.open_nursery() as nursery:
                self.nursery = nursery
                await self.asyncSetUp()
                try:
                    await test(self)
                finally:
                    await self.asyncTearDown()
                nursery.cancel_scope.cancel()
        @functools.wraps(test_with_setup)
        def sync_test_with_setup() -> None:
            trio.run(test_with_setup, clock=self.make_clock())
        setattr(self, methodName, sync_test_with_setup)

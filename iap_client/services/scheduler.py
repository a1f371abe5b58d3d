"""
Timer abstraction.

Sessions never read the wall clock directly; they ask a Scheduler for
callbacks so tests can drive virtual time.
"""

import asyncio
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    """A pending timer callback."""

    def cancel(self) -> None:
        """Stop the callback from running; safe to call more than once."""
        ...


class Scheduler(Protocol):
    """Source of delayed callbacks and the current time."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` after ``delay`` seconds."""
        ...

    def time(self) -> float:
        """Monotonic time in seconds."""
        ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)

    def time(self) -> float:
        return self.loop.time()

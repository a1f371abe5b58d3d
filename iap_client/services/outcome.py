"""
Single-fire outcome.

An Outcome is resolved exactly once, with ``None`` for success or an
exception. The result is delivered to an optional callback and to any
coroutine awaiting ``wait()``.
"""

import asyncio
from collections.abc import Callable
from typing import Generic, TypeVar

from iap_client.exceptions import SessionStateError

T = TypeVar("T")

OutcomeCallback = Callable[[BaseException | None], None]


class Outcome(Generic[T]):
    """
    One-shot result channel.

    Usage:
        outcome = Outcome(callback, name="purchase")
        outcome.resolve(None, value=product)   # first and only write
        product = await outcome.wait()         # raises if resolved with an error
    """

    def __init__(self, callback: OutcomeCallback | None = None, name: str = "outcome") -> None:
        self.name = name
        self._callback = callback
        self._resolved = False
        self._error: BaseException | None = None
        self._value: T | None = None
        self._waiters: list[asyncio.Future[T | None]] = []

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def error(self) -> BaseException | None:
        return self._error

    def resolve(self, error: BaseException | None, value: T | None = None) -> None:
        """
        Settle the outcome.

        Raises:
            SessionStateError: If the outcome was already settled
        """
        if self._resolved:
            raise SessionStateError(f"{self.name} already settled")

        self._resolved = True
        self._error = error
        self._value = value

        for waiter in self._waiters:
            self._deliver(waiter)
        self._waiters.clear()

        if self._callback is not None:
            self._callback(error)

    def _deliver(self, waiter: "asyncio.Future[T | None]") -> None:
        if waiter.done():
            return
        if self._error is not None:
            waiter.set_exception(self._error)
        else:
            waiter.set_result(self._value)

    async def wait(self) -> T | None:
        """Wait for the outcome; returns the value or raises the error."""
        waiter: asyncio.Future[T | None] = asyncio.get_running_loop().create_future()
        if self._resolved:
            self._deliver(waiter)
        else:
            self._waiters.append(waiter)
        return await waiter

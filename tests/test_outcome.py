"""
Tests for single-fire outcomes and the asyncio scheduler.
"""

import asyncio

import pytest

from fakes import OutcomeRecorder
from iap_client.exceptions import PayError, SessionStateError
from iap_client.services.outcome import Outcome
from iap_client.services.scheduler import AsyncioScheduler


class TestOutcome:
    """Tests for Outcome."""

    def test_callback_receives_success(self):
        recorder = OutcomeRecorder()
        outcome: Outcome[str] = Outcome(recorder)
        outcome.resolve(None, "value")

        assert recorder.error is None
        assert outcome.resolved
        assert outcome.error is None

    def test_callback_receives_error(self):
        recorder = OutcomeRecorder()
        error = PayError("X")
        Outcome(recorder).resolve(error)
        assert recorder.error is error

    def test_resolving_twice_raises(self):
        recorder = OutcomeRecorder()
        outcome: Outcome[None] = Outcome(recorder, name="payment")
        outcome.resolve(None)

        with pytest.raises(SessionStateError, match="payment already settled"):
            outcome.resolve(PayError("X"))
        assert recorder.calls == [None]

    @pytest.mark.asyncio
    async def test_wait_before_resolve(self):
        outcome: Outcome[str] = Outcome()
        waiter = asyncio.ensure_future(outcome.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        outcome.resolve(None, "value")
        assert await waiter == "value"

    @pytest.mark.asyncio
    async def test_wait_after_resolve(self):
        outcome: Outcome[str] = Outcome()
        outcome.resolve(None, "value")
        assert await outcome.wait() == "value"

    @pytest.mark.asyncio
    async def test_wait_raises_error(self):
        outcome: Outcome[str] = Outcome()
        error = PayError("X")
        outcome.resolve(error)

        with pytest.raises(PayError) as exc_info:
            await outcome.wait()
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_several_waiters(self):
        outcome: Outcome[int] = Outcome()
        waiters = [asyncio.ensure_future(outcome.wait()) for _ in range(3)]
        await asyncio.sleep(0)

        outcome.resolve(None, 7)
        assert await asyncio.gather(*waiters) == [7, 7, 7]


class TestAsyncioScheduler:
    """Tests for the event loop backed scheduler."""

    @pytest.mark.asyncio
    async def test_call_later(self):
        scheduler = AsyncioScheduler()
        fired = asyncio.Event()
        scheduler.call_later(0.01, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_cancel(self):
        scheduler = AsyncioScheduler()
        calls = []
        handle = scheduler.call_later(0.01, lambda: calls.append(True))
        handle.cancel()

        await asyncio.sleep(0.05)
        assert calls == []

    @pytest.mark.asyncio
    async def test_time_follows_loop(self):
        scheduler = AsyncioScheduler()
        assert scheduler.time() == pytest.approx(asyncio.get_running_loop().time(), abs=0.1)

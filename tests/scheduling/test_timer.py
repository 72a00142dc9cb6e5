"""Tests for drift-corrected, abortable timers."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from deferq.domain.errors import CancellationError
from deferq.scheduling.timer import (
    SYSTEM_CLOCK,
    CancellationToken,
    run_at,
    sleep_until,
)


class TestCancellationToken:
    def test_initial_state(self) -> None:
        token = CancellationToken()
        assert token.is_cancelled is False
        assert token.reason is None
        token.raise_if_cancelled()

    def test_first_cancel_wins(self) -> None:
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.is_cancelled is True
        assert token.reason == "first"

    def test_raise_if_cancelled_carries_reason(self) -> None:
        token = CancellationToken()
        token.cancel("stop now")
        with pytest.raises(CancellationError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "stop now"

    @pytest.mark.asyncio
    async def test_wait_returns_after_cancel(self) -> None:
        token = CancellationToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)


class TestSleepUntil:
    @pytest.mark.asyncio
    async def test_wakes_at_target(self, clock: Any) -> None:
        task = asyncio.ensure_future(
            sleep_until(clock.at(2500), CancellationToken(), reset_interval_ms=1000, clock=clock)
        )
        await clock.advance(2499)
        assert not task.done()
        await clock.advance(1)
        assert task.done()
        task.result()

    @pytest.mark.asyncio
    async def test_rearms_in_reset_interval_chunks(self, clock: Any) -> None:
        task = asyncio.ensure_future(
            sleep_until(clock.at(10_000), CancellationToken(), reset_interval_ms=1000, clock=clock)
        )
        await clock.settle()
        assert clock.pending_sleepers == 1
        await clock.advance(4000)
        assert not task.done()
        assert clock.pending_sleepers == 1
        await clock.advance(6000)
        assert task.done()

    @pytest.mark.asyncio
    async def test_past_target_returns_immediately(self, clock: Any) -> None:
        await clock.advance(1000)
        await asyncio.wait_for(
            sleep_until(clock.at(0), CancellationToken(), clock=clock), timeout=1
        )

    @pytest.mark.asyncio
    async def test_cancel_before_target(self, clock: Any) -> None:
        token = CancellationToken()
        task = asyncio.ensure_future(sleep_until(clock.at(5000), token, clock=clock))
        await clock.advance(1500)
        token.cancel("no longer needed")
        await clock.settle()
        assert task.done()
        with pytest.raises(CancellationError) as exc_info:
            task.result()
        assert exc_info.value.reason == "no longer needed"
        assert clock.pending_sleepers == 0

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self, clock: Any) -> None:
        token = CancellationToken()
        token.cancel("early")
        with pytest.raises(CancellationError):
            await sleep_until(clock.at(5000), token, clock=clock)

    @pytest.mark.asyncio
    async def test_rejects_non_positive_interval(self, clock: Any) -> None:
        with pytest.raises(ValueError, match="reset_interval_ms"):
            await sleep_until(clock.at(10), CancellationToken(), reset_interval_ms=0, clock=clock)

    @pytest.mark.asyncio
    async def test_system_clock_short_wait(self) -> None:
        end = SYSTEM_CLOCK.now()
        await asyncio.wait_for(sleep_until(end, CancellationToken()), timeout=1)


class TestRunAt:
    @pytest.mark.asyncio
    async def test_calls_operation_at_instant(self, clock: Any) -> None:
        fired: list[Any] = []

        def operation() -> str:
            fired.append(clock.now())
            return "done"

        task = asyncio.ensure_future(
            run_at(clock.at(3000), operation, CancellationToken(), clock=clock)
        )
        await clock.advance(2999)
        assert fired == []
        await clock.advance(1)
        assert fired == [clock.at(3000)]
        assert task.result() == "done"

    @pytest.mark.asyncio
    async def test_awaits_async_operation(self, clock: Any) -> None:
        async def operation() -> int:
            await asyncio.sleep(0)
            return 42

        task = asyncio.ensure_future(run_at(clock.at(10), operation, CancellationToken(), clock=clock))
        await clock.advance(10)
        assert task.result() == 42

    @pytest.mark.asyncio
    async def test_cancelled_operation_never_runs(self, clock: Any) -> None:
        calls: list[int] = []
        token = CancellationToken()
        task = asyncio.ensure_future(
            run_at(clock.at(1000), lambda: calls.append(1), token, clock=clock)
        )
        await clock.advance(500)
        token.cancel("abort")
        await clock.advance(1000)
        assert calls == []
        with pytest.raises(CancellationError):
            task.result()

    @pytest.mark.asyncio
    async def test_cancel_after_fire_is_noop(self, clock: Any) -> None:
        token = CancellationToken()
        task = asyncio.ensure_future(run_at(clock.at(100), lambda: "ok", token, clock=clock))
        await clock.advance(100)
        token.cancel("too late")
        await clock.settle()
        assert task.result() == "ok"

"""Abortable, drift-corrected timers.

Long single waits are unreliable: event loops coarsen them, suspended
processes overshoot them, and some platforms cap their duration. Instead
:func:`sleep_until` keeps an absolute target and re-arms a short wait
every ``reset_interval_ms``, recomputing the remaining time from the
clock each round. The fired time is therefore accurate to within one
reset interval however far away the target is.

Cancellation is an explicit value, :class:`CancellationToken`, passed in
by the caller. Triggering it before the target fails the wait with
:class:`~deferq.domain.errors.CancellationError` and tears down the
pending wait. Triggering it afterwards does nothing.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Protocol, TypeVar

from deferq.domain.errors import CancellationError
from deferq.domain.timeutil import now_utc

T = TypeVar("T")

DEFAULT_RESET_INTERVAL_MS = 1000


class Clock(Protocol):
    """Source of wall-clock time and of suspensions measured against it."""

    def now(self) -> datetime: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Real UTC wall clock backed by ``asyncio.sleep``."""

    def now(self) -> datetime:
        return now_utc()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))


SYSTEM_CLOCK = SystemClock()


class CancellationToken:
    """Cooperative cancellation signal for a single pending operation.

    The first :meth:`cancel` wins; later calls keep the original reason.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Any = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Any:
        return self._reason

    def cancel(self, reason: Any = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError(self._reason)


async def _sleep_or_cancel(clock: Clock, seconds: float, token: CancellationToken) -> None:
    """Sleep for *seconds* unless *token* fires first. Never leaves tasks behind."""
    sleeper = asyncio.ensure_future(clock.sleep(seconds))
    watcher = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, watcher):
            if not task.done():
                task.cancel()
        await asyncio.gather(sleeper, watcher, return_exceptions=True)
    token.raise_if_cancelled()


async def sleep_until(
    end: datetime,
    cancellation_token: CancellationToken,
    *,
    reset_interval_ms: int = DEFAULT_RESET_INTERVAL_MS,
    clock: Clock = SYSTEM_CLOCK,
) -> None:
    """Suspend until *clock* reaches *end*.

    Raises:
        CancellationError: If *cancellation_token* fires before *end*.
        ValueError: If *reset_interval_ms* is not positive.
    """
    if reset_interval_ms <= 0:
        msg = f"reset_interval_ms must be positive, got {reset_interval_ms}"
        raise ValueError(msg)
    interval = reset_interval_ms / 1000
    cancellation_token.raise_if_cancelled()
    while True:
        remaining = (end - clock.now()).total_seconds()
        if remaining <= 0:
            return
        await _sleep_or_cancel(clock, min(remaining, interval), cancellation_token)


async def run_at(
    instant: datetime,
    operation: Callable[[], T | Awaitable[T]],
    cancellation_token: CancellationToken,
    *,
    reset_interval_ms: int = DEFAULT_RESET_INTERVAL_MS,
    clock: Clock = SYSTEM_CLOCK,
) -> T:
    """Invoke *operation* once *instant* is reached and return its result.

    If the token fires first, *operation* is never called and
    :class:`~deferq.domain.errors.CancellationError` propagates.
    """
    await sleep_until(
        instant,
        cancellation_token,
        reset_interval_ms=reset_interval_ms,
        clock=clock,
    )
    result = operation()
    if inspect.isawaitable(result):
        return await result
    return result

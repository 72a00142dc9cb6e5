"""Sliding-window admission: when may the next execution run?

:func:`calculate_next_execution_date` is a pure search over execution
history. It starts from ``max(now, newest scheduled instant)`` so the
backlog stays ordered, then walks forward to a fixed point:

    for each rule:
        window_start = candidate - rule.time_window
        if count(executions after window_start) >= rule.limit:
            candidate = oldest(executions after window_start) + rule.time_window

and repeats full passes until no rule moves the candidate. Every move is
strictly forward and history is finite, so the loop terminates. Rule
order only changes how many passes it takes, not the result.

Because the candidate is never earlier than the newest scheduled instant,
"after window_start" is the same set as "inside (window_start, candidate]".
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Protocol

from deferq.domain.rules import TimeWindowRateLimitationRule
from deferq.domain.timeutil import truncate_to_millis

logger = logging.getLogger(__name__)


class ExecutionHistory(Protocol):
    """Read-only view over scheduled and executed instants."""

    async def newest_execution_date(self) -> datetime | None:
        """Most recent scheduled or executed instant, or None when empty."""
        ...

    async def oldest_execution_date_after(self, window_start: datetime) -> datetime | None:
        """Oldest instant strictly after *window_start*."""
        ...

    async def count_executions_after(self, window_start: datetime) -> int:
        """Number of executions strictly after *window_start*."""
        ...


async def calculate_next_execution_date(
    rules: Sequence[TimeWindowRateLimitationRule],
    history: ExecutionHistory,
    now: datetime,
) -> datetime:
    """Return the earliest admissible instant for a new execution.

    The result, adopted as a new ``executed_at``, keeps every rule's
    "at most N per window" bound with respect to *history*.
    """
    newest = await history.newest_execution_date()
    candidate = truncate_to_millis(now)
    if newest is not None and newest > candidate:
        candidate = newest

    passes = 0
    while True:
        passes += 1
        moved = False
        for rule in rules:
            window_start = candidate - rule.time_window
            count = await history.count_executions_after(window_start)
            if count < rule.execution_count_per_time_window:
                continue
            oldest = await history.oldest_execution_date_after(window_start)
            if oldest is None:
                # History changed underneath us; the count is stale.
                continue
            advanced = oldest + rule.time_window
            if advanced > candidate:
                candidate = advanced
                moved = True
        if not moved:
            break

    logger.debug("Next execution date %s after %d pass(es)", candidate.isoformat(), passes)
    return candidate


class AdmissionStrategy(Protocol):
    """Policy deciding when a newly enqueued execution may run."""

    async def next_execution_date(self, history: ExecutionHistory, now: datetime) -> datetime: ...

    @property
    def history_window(self) -> timedelta:
        """How far before *now* executed history can still delay admission."""
        ...


class TimeWindowRateLimitationStrategy:
    """Admission by a conjunctive set of sliding-window rate limits."""

    def __init__(self, rules: Sequence[TimeWindowRateLimitationRule]) -> None:
        self._rules = tuple(sorted(rules, key=lambda rule: rule.time_window_ms))

    @property
    def rules(self) -> tuple[TimeWindowRateLimitationRule, ...]:
        return self._rules

    @property
    def history_window(self) -> timedelta:
        if not self._rules:
            return timedelta(0)
        return max(rule.time_window for rule in self._rules)

    async def next_execution_date(self, history: ExecutionHistory, now: datetime) -> datetime:
        return await calculate_next_execution_date(self._rules, history, now)

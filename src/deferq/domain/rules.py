"""Admission rules for the execution queue."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, PositiveInt


class TimeWindowRateLimitationRule(BaseModel):
    """At most ``execution_count_per_time_window`` executions per trailing window.

    A set of rules is evaluated conjunctively: an instant is admissible only
    when every rule holds at once.
    """

    model_config = {"frozen": True}

    time_window_ms: PositiveInt
    execution_count_per_time_window: PositiveInt

    @property
    def time_window(self) -> timedelta:
        return timedelta(milliseconds=self.time_window_ms)


class FailurePolicy(str, Enum):
    """What the queue does when firing an execution fails."""

    SKIP = "skip"  # mark executed, keep draining
    HALT = "halt"  # leave pending, stop reserving until resumed

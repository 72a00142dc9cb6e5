"""Scheduling primitives — admission rules, timers, and the reservation slot.

Everything here is storage-agnostic: history is read through the
:class:`~deferq.scheduling.rate_limiter.ExecutionHistory` protocol and
time through the :class:`~deferq.scheduling.timer.Clock` protocol.
"""

from deferq.scheduling.rate_limiter import (
    AdmissionStrategy,
    ExecutionHistory,
    TimeWindowRateLimitationStrategy,
    calculate_next_execution_date,
)
from deferq.scheduling.reservation import Idle, Reserved, ReservationSlot
from deferq.scheduling.timer import (
    SYSTEM_CLOCK,
    CancellationToken,
    Clock,
    SystemClock,
    run_at,
    sleep_until,
)

__all__ = [
    "SYSTEM_CLOCK",
    "AdmissionStrategy",
    "CancellationToken",
    "Clock",
    "ExecutionHistory",
    "Idle",
    "ReservationSlot",
    "Reserved",
    "SystemClock",
    "TimeWindowRateLimitationStrategy",
    "calculate_next_execution_date",
    "run_at",
    "sleep_until",
]

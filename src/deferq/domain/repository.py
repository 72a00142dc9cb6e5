"""Persistence contract for executions.

The queue only talks to storage through :class:`ExecutionRepository`.
Implementations live in ``deferq.infrastructure.repositories``; any other
storage engine can be plugged in by satisfying the same protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from deferq.domain.execution import Execution
from deferq.domain.timeutil import truncate_to_millis


class SortOrder(str, Enum):
    """Ordering on ``executed_at``. Ties always resolve by insertion order."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class TimeRange:
    """Bounds on ``executed_at``. ``None`` leaves a side open.

    ``start`` is inclusive unless ``include_start`` is False; ``end`` is
    always inclusive.
    """

    start: datetime | None = None
    end: datetime | None = None
    include_start: bool = True

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", truncate_to_millis(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", truncate_to_millis(self.end))

    def contains(self, instant: datetime) -> bool:
        if self.start is not None:
            if self.include_start and instant < self.start:
                return False
            if not self.include_start and instant <= self.start:
                return False
        return self.end is None or instant <= self.end


@dataclass(frozen=True)
class ExecutionFilters:
    """Conjunctive filters. ``executed_at`` is an exact instant or a range."""

    executed_at: datetime | TimeRange | None = None
    is_executed: bool | None = None

    def __post_init__(self) -> None:
        if isinstance(self.executed_at, datetime):
            object.__setattr__(self, "executed_at", truncate_to_millis(self.executed_at))

    def matches(self, execution: Execution) -> bool:
        if isinstance(self.executed_at, TimeRange):
            if not self.executed_at.contains(execution.executed_at):
                return False
        elif self.executed_at is not None and execution.executed_at != self.executed_at:
            return False
        return self.is_executed is None or execution.is_executed == self.is_executed


class ExecutionRepository(Protocol):
    """Async CRUD contract over persisted executions."""

    async def get_one_by_id(self, execution_id: str) -> Execution | None: ...

    async def get_many(
        self,
        filters: ExecutionFilters | None = None,
        *,
        order_by: SortOrder = SortOrder.ASC,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[Execution]: ...

    async def count(self, filters: ExecutionFilters | None = None) -> int: ...

    async def create_one(self, execution: Execution) -> None:
        """Persist a new execution. Raises ``DuplicateIdError`` on collision."""
        ...

    async def update_one(self, execution: Execution) -> None:
        """Replace the stored record with the same id. No-op if absent."""
        ...

    async def delete_one_by_id(self, execution_id: str) -> None:
        """Delete by id. No-op if absent."""
        ...

    async def delete_executed_before(self, instant: datetime) -> int:
        """Delete executed records scheduled strictly before *instant*."""
        ...

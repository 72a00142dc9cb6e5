"""Repository-backed execution history for admission checks.

Bridges :class:`~deferq.domain.repository.ExecutionRepository` to the
:class:`~deferq.scheduling.rate_limiter.ExecutionHistory` protocol.

``excluded`` hides records from the view. ``start()`` uses it while it
re-validates the backlog: a pending record that has not been rescheduled
yet must not count against its own new slot.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from deferq.domain.repository import (
    ExecutionFilters,
    ExecutionRepository,
    SortOrder,
    TimeRange,
)


class RepositoryHistory:
    """History view over every persisted execution, executed or not."""

    def __init__(
        self,
        repository: ExecutionRepository,
        excluded: Mapping[str, datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._excluded: Mapping[str, datetime] = excluded if excluded is not None else {}

    async def newest_execution_date(self) -> datetime | None:
        return await self._first(None, SortOrder.DESC)

    async def oldest_execution_date_after(self, window_start: datetime) -> datetime | None:
        return await self._first(self._after(window_start), SortOrder.ASC)

    async def count_executions_after(self, window_start: datetime) -> int:
        total = await self._repository.count(self._after(window_start))
        hidden = sum(1 for instant in self._excluded.values() if instant > window_start)
        return total - hidden

    @staticmethod
    def _after(window_start: datetime) -> ExecutionFilters:
        return ExecutionFilters(executed_at=TimeRange(start=window_start, include_start=False))

    async def _first(self, filters: ExecutionFilters | None, order: SortOrder) -> datetime | None:
        # Over-fetch by the number of hidden records so one visible row survives.
        rows = await self._repository.get_many(
            filters, order_by=order, limit=len(self._excluded) + 1
        )
        for execution in rows:
            if execution.id not in self._excluded:
                return execution.executed_at
        return None

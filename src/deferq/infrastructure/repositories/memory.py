"""Dict-backed execution repository for tests and ephemeral queues."""

from __future__ import annotations

from datetime import datetime

from deferq.domain.errors import DuplicateIdError
from deferq.domain.execution import Execution
from deferq.domain.repository import ExecutionFilters, SortOrder
from deferq.domain.timeutil import truncate_to_millis


class InMemoryExecutionRepository:
    """Keeps executions in a dict keyed by id.

    Each record remembers its insertion sequence so ties on
    ``executed_at`` resolve in enqueue order, matching the SQL repository.
    """

    def __init__(self) -> None:
        self._rows: dict[str, tuple[int, Execution]] = {}
        self._next_seq = 1

    def __len__(self) -> int:
        return len(self._rows)

    async def get_one_by_id(self, execution_id: str) -> Execution | None:
        row = self._rows.get(execution_id)
        return row[1] if row is not None else None

    async def get_many(
        self,
        filters: ExecutionFilters | None = None,
        *,
        order_by: SortOrder = SortOrder.ASC,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[Execution]:
        rows = self._select(filters)
        rows.sort(
            key=lambda row: (row[1].executed_at, row[0]),
            reverse=order_by is SortOrder.DESC,
        )
        start = offset or 0
        stop = start + limit if limit is not None else None
        return [execution for _, execution in rows[start:stop]]

    async def count(self, filters: ExecutionFilters | None = None) -> int:
        return len(self._select(filters))

    async def create_one(self, execution: Execution) -> None:
        if execution.id in self._rows:
            raise DuplicateIdError(execution.id)
        self._rows[execution.id] = (self._next_seq, execution)
        self._next_seq += 1

    async def update_one(self, execution: Execution) -> None:
        row = self._rows.get(execution.id)
        if row is None:
            return
        self._rows[execution.id] = (row[0], execution)

    async def delete_one_by_id(self, execution_id: str) -> None:
        self._rows.pop(execution_id, None)

    async def delete_executed_before(self, instant: datetime) -> int:
        cutoff = truncate_to_millis(instant)
        doomed = [
            execution_id
            for execution_id, (_, execution) in self._rows.items()
            if execution.is_executed and execution.executed_at < cutoff
        ]
        for execution_id in doomed:
            del self._rows[execution_id]
        return len(doomed)

    def _select(self, filters: ExecutionFilters | None) -> list[tuple[int, Execution]]:
        if filters is None:
            return list(self._rows.values())
        return [row for row in self._rows.values() if filters.matches(row[1])]

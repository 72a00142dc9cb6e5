"""QueueService — ServiceResult facade over the execution queue gateway.

The CLI talks to the queue only through this service. Every method
returns a :class:`ServiceResult`; :class:`DeferqError` raised below is
converted into an ``ok=False`` result carrying the error's ``code``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from deferq.domain.errors import DeferqError
from deferq.domain.repository import ExecutionFilters, SortOrder
from deferq.scheduling.rate_limiter import TimeWindowRateLimitationStrategy
from deferq.scheduling.timer import SYSTEM_CLOCK, Clock
from deferq.services.gateway import ExecutionQueueGateway
from deferq.services.result import ServiceResult
from deferq.transport import DetachedClient

if TYPE_CHECKING:
    from datetime import datetime

    from deferq.domain.execution import Execution
    from deferq.infrastructure.store import QueueStore
    from deferq.transport import RequestClient

logger = logging.getLogger(__name__)


def create_gateway(
    store: QueueStore,
    client: RequestClient | None = None,
    *,
    clock: Clock = SYSTEM_CLOCK,
) -> ExecutionQueueGateway:
    """Build a gateway over *store* configured from its ``[queue]`` settings.

    Without a *client* the gateway can schedule and cancel but not fire.
    """
    queue = store.settings.queue
    return ExecutionQueueGateway(
        client=client or DetachedClient(),
        repository=store.repository,
        strategy=TimeWindowRateLimitationStrategy(queue.rules),
        event_bus=store.event_bus,
        clock=clock,
        timer_reset_interval_ms=queue.timer_reset_interval_ms,
        failure_policy=queue.failure_policy,
    )


def execution_to_dict(execution: Execution) -> dict[str, Any]:
    """JSON-ready view of an execution."""
    return {
        "id": execution.id,
        "args": list(execution.args),
        "executed_at": execution.executed_at.isoformat(),
        "is_executed": execution.is_executed,
    }


def _error_result(op: str, exc: DeferqError) -> ServiceResult:
    logger.debug("%s failed", op, exc_info=True)
    return ServiceResult.failure(op, exc.code, str(exc))


class QueueService:
    """Queue operations exposed to the CLI."""

    def __init__(self, gateway: ExecutionQueueGateway) -> None:
        self._gateway = gateway

    @property
    def gateway(self) -> ExecutionQueueGateway:
        return self._gateway

    async def enqueue(self, args: Sequence[Any] = ()) -> ServiceResult:
        """Schedule a deferred call with *args*."""
        try:
            execution = await self._gateway.enqueue(args)
        except DeferqError as exc:
            return _error_result("enqueue", exc)
        return ServiceResult(ok=True, op="enqueue", data=execution_to_dict(execution))

    async def cancel(self, execution_id: str) -> ServiceResult:
        """Withdraw a pending execution. Unknown or executed ids only warn."""
        try:
            cancelled = await self._gateway.cancel(execution_id)
        except DeferqError as exc:
            return _error_result("cancel", exc)
        warnings: list[str] = []
        if not cancelled:
            warnings.append(f"No pending execution with id {execution_id}")
        return ServiceResult(
            ok=True,
            op="cancel",
            data={"id": execution_id, "cancelled": cancelled},
            warnings=warnings,
        )

    async def list_executions(
        self,
        *,
        is_executed: bool | None = None,
        limit: int | None = None,
        order_by: SortOrder = SortOrder.ASC,
    ) -> ServiceResult:
        """List executions in scheduled order, optionally filtered by state."""
        filters = ExecutionFilters(is_executed=is_executed)
        try:
            items = await self._gateway.repository.get_many(
                filters, order_by=order_by, limit=limit
            )
        except DeferqError as exc:
            return _error_result("list_executions", exc)
        return ServiceResult(
            ok=True,
            op="list_executions",
            data={"items": [execution_to_dict(e) for e in items], "count": len(items)},
        )

    async def stats(self) -> ServiceResult:
        """Counts of pending and executed records plus the next scheduled instant."""
        repository = self._gateway.repository
        try:
            total = await repository.count()
            pending = await repository.count(ExecutionFilters(is_executed=False))
            head = await repository.get_many(
                ExecutionFilters(is_executed=False), order_by=SortOrder.ASC, limit=1
            )
        except DeferqError as exc:
            return _error_result("stats", exc)
        return ServiceResult(
            ok=True,
            op="stats",
            data={
                "total": total,
                "pending": pending,
                "executed": total - pending,
                "next_executed_at": head[0].executed_at.isoformat() if head else None,
                "reserved_id": self._gateway.reserved_id,
                "halted": self._gateway.is_halted,
            },
        )

    async def next_slot(self) -> ServiceResult:
        """Instant a call enqueued right now would be scheduled at."""
        try:
            executed_at = await self._gateway.next_execution_date()
        except DeferqError as exc:
            return _error_result("next_slot", exc)
        return ServiceResult(
            ok=True, op="next_slot", data={"executed_at": executed_at.isoformat()}
        )

    async def prune(self, before: datetime) -> ServiceResult:
        """Delete executed records scheduled before *before*. Pending ones are kept.

        A cutoff newer than the longest rule window is moved back to it:
        records inside the window still decide when the next call may run.
        """
        if before.tzinfo is None:
            return ServiceResult.failure(
                "prune", "INVALID_INSTANT", "Prune cutoff must be timezone-aware"
            )
        warnings: list[str] = []
        cutoff = before
        horizon = self._gateway.history_horizon()
        if cutoff > horizon:
            cutoff = horizon
            warnings.append(
                f"Cutoff moved back to {horizon.isoformat()}; "
                "newer executed records are still needed for rate limiting"
            )
        try:
            deleted = await self._gateway.repository.delete_executed_before(cutoff)
        except DeferqError as exc:
            return _error_result("prune", exc)
        return ServiceResult(
            ok=True,
            op="prune",
            data={"deleted": deleted, "before": cutoff.isoformat()},
            warnings=warnings,
        )

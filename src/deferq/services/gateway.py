"""ExecutionQueueGateway — rate-limited deferred execution with one call in flight.

``enqueue`` asks the admission strategy for the earliest admissible
instant, persists the execution, and posts a *reconcile* message.
A single worker task consumes those messages one at a time. Reconciling
means: if the reservation slot is idle, reserve the earliest pending
execution and arm a timer for it. When the timer fires the remote call
is made, the execution is marked executed, the slot goes back to idle,
``post_complete`` is dispatched, and another reconcile message is
posted, so the backlog drains without polling. Executions enqueued by
another process are picked up by :meth:`ExecutionQueueGateway.watch`.

INVARIANT: at most one execution is reserved at a time. Only the worker
reserves, and it checks and sets the slot without awaiting in between.

Failures inside the fire callback have no caller to report to. They are
logged, dispatched as ``post_failure``, and handled by the configured
:class:`FailurePolicy`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from deferq.domain.errors import (
    CancellationError,
    DeferqError,
    QueueStateError,
    RemoteCallError,
)
from deferq.domain.execution import (
    Execution,
    ExecutionFactory,
    create_execution_factory,
    normalize_args,
)
from deferq.domain.repository import ExecutionFilters, ExecutionRepository, SortOrder
from deferq.domain.rules import FailurePolicy
from deferq.scheduling.reservation import ReservationSlot, ReservationState, Reserved
from deferq.scheduling.timer import (
    DEFAULT_RESET_INTERVAL_MS,
    SYSTEM_CLOCK,
    CancellationToken,
    Clock,
    run_at,
    sleep_until,
)
from deferq.services.history import RepositoryHistory

if TYPE_CHECKING:
    from datetime import datetime

    from deferq.plugins.event_bus import EventBus
    from deferq.scheduling.rate_limiter import AdmissionStrategy
    from deferq.transport import RequestClient

logger = logging.getLogger(__name__)


_RECONCILE = "reconcile"
_STOP = "stop"


class ExecutionQueueGateway:
    """Orchestrates enqueue / cancel / start over a repository and a request client.

    Parameters:
        client: Performs the deferred call with an execution's args.
        repository: Persistent store of executions (sole source of truth).
        strategy: Admission policy that schedules new executions.
        event_bus: Receives queue events; None disables dispatch.
        clock: Time source for scheduling and timers.
        timer_reset_interval_ms: Re-arm period of the drift-corrected timer.
        failure_policy: Handling of failed fire callbacks.
        execution_factory: Builds new executions (ids included).
    """

    def __init__(
        self,
        *,
        client: RequestClient,
        repository: ExecutionRepository,
        strategy: AdmissionStrategy,
        event_bus: EventBus | None = None,
        clock: Clock = SYSTEM_CLOCK,
        timer_reset_interval_ms: int = DEFAULT_RESET_INTERVAL_MS,
        failure_policy: FailurePolicy = FailurePolicy.SKIP,
        execution_factory: ExecutionFactory | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        self._strategy = strategy
        self._event_bus = event_bus
        self._clock = clock
        self._timer_reset_interval_ms = timer_reset_interval_ms
        self._failure_policy = failure_policy
        self._execution_factory = execution_factory or create_execution_factory()

        self._slot = ReservationSlot()
        self._messages: asyncio.Queue[str] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._timer_task: asyncio.Task[None] | None = None
        self._started = False
        self._stopped = False
        self._halted = False
        self._stop_token = CancellationToken()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ReservationState:
        return self._slot.state

    @property
    def reserved_id(self) -> str | None:
        return self._slot.reserved_id

    @property
    def is_halted(self) -> bool:
        return self._halted

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def repository(self) -> ExecutionRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def next_execution_date(self) -> datetime:
        """Instant a newly enqueued execution would be scheduled at right now."""
        history = RepositoryHistory(self._repository)
        return await self._strategy.next_execution_date(history, self._clock.now())

    def history_horizon(self) -> datetime:
        """Oldest instant admission still looks at.

        Executed records scheduled before it no longer affect scheduling
        and may be pruned.
        """
        return self._clock.now() - self._strategy.history_window

    async def enqueue(self, args: Sequence[Any] = ()) -> Execution:
        """Schedule a deferred call with *args* and persist it.

        Returns immediately with the created execution; never waits for
        its scheduled instant. *args* are stored in their JSON form, so
        tuples come back as lists whatever the repository.

        Raises:
            QueueStateError: If the gateway has been stopped.
            InvalidArgumentsError: If *args* are not JSON-serializable.
            RepositoryError: If persistence fails.
        """
        if self._stopped:
            msg = "Cannot enqueue on a stopped queue"
            raise QueueStateError(msg)
        captured = normalize_args(args)

        executed_at = await self.next_execution_date()
        execution = self._execution_factory(captured, executed_at)
        await self._repository.create_one(execution)
        logger.debug("Enqueued %s for %s", execution.id, execution.executed_at.isoformat())
        self._post(_RECONCILE)
        self._dispatch(
            "post_enqueue",
            {
                "execution_id": execution.id,
                "args": list(execution.args),
                "executed_at": execution.executed_at.isoformat(),
            },
        )
        return execution

    async def cancel(self, execution_id: str) -> bool:
        """Withdraw a pending execution.

        A reserved execution has its timer cancelled at once, but the slot
        is released only once the record is gone, so the worker cannot
        reserve the withdrawn execution again. Executed or unknown ids are
        left alone.

        Returns True if a pending execution was removed.
        """
        reason = f"Execution {execution_id} was cancelled"
        state = self._slot.state
        if isinstance(state, Reserved) and state.id == execution_id:
            state.cancellation_token.cancel(reason)

        execution = await self._repository.get_one_by_id(execution_id)
        if execution is None or execution.is_executed:
            if self._release_reservation(execution_id, reason):
                self._post(_RECONCILE)
            return False

        await self._repository.delete_one_by_id(execution_id)
        # The worker may have reserved it while the delete was suspended.
        self._release_reservation(execution_id, reason)
        logger.debug("Cancelled %s", execution_id)
        self._post(_RECONCILE)
        self._dispatch("post_cancel", {"execution_id": execution_id})
        return True

    async def start(self) -> int:
        """Re-validate the persisted backlog and begin draining it.

        Admission state does not survive a restart, only persisted history
        does, so every pending execution is rescheduled in order against
        the current rules before the worker starts.

        Returns the number of pending executions found.

        Raises:
            QueueStateError: If called more than once.
        """
        if self._started:
            msg = "Queue has already been started"
            raise QueueStateError(msg)
        self._started = True

        pending = await self._repository.get_many(
            ExecutionFilters(is_executed=False), order_by=SortOrder.ASC
        )
        unvalidated = {execution.id: execution.executed_at for execution in pending}
        history = RepositoryHistory(self._repository, excluded=unvalidated)
        for execution in pending:
            executed_at = await self._strategy.next_execution_date(history, self._clock.now())
            if executed_at != execution.executed_at:
                await self._repository.update_one(execution.with_executed_at(executed_at))
                logger.debug(
                    "Rescheduled %s from %s to %s",
                    execution.id,
                    execution.executed_at.isoformat(),
                    executed_at.isoformat(),
                )
            del unvalidated[execution.id]

        self._worker = asyncio.create_task(self._run_worker(), name="deferq-reconcile")
        self._post(_RECONCILE)
        logger.info("Queue started with %d pending execution(s)", len(pending))
        return len(pending)

    def resume(self) -> None:
        """Leave the halted state and reconcile again."""
        if not self._halted:
            return
        self._halted = False
        logger.info("Queue resumed")
        self._post(_RECONCILE)

    async def drain(self) -> None:
        """Wait until no reconcile message is queued and no timer is armed.

        With a backlog scheduled in the future this waits for all of it to
        fire, or until the queue halts.

        Raises:
            QueueStateError: If the worker is not running.
        """
        if not self.is_running:
            msg = "Queue is not running"
            raise QueueStateError(msg)
        while True:
            await self._messages.join()
            task = self._timer_task
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            if self._messages.empty():
                return

    async def watch(self) -> None:
        """Reconcile every ``timer_reset_interval_ms`` until the queue stops.

        Other processes sharing the repository can enqueue without posting
        to this worker; polling picks their executions up.

        Raises:
            QueueStateError: If the worker is not running.
        """
        if not self.is_running:
            msg = "Queue is not running"
            raise QueueStateError(msg)
        interval = timedelta(milliseconds=self._timer_reset_interval_ms)
        while True:
            try:
                await sleep_until(
                    self._clock.now() + interval,
                    self._stop_token,
                    reset_interval_ms=self._timer_reset_interval_ms,
                    clock=self._clock,
                )
            except CancellationError:
                return
            if self._slot.is_idle and self._messages.empty():
                self._post(_RECONCILE)

    async def stop(self) -> None:
        """Stop the worker. A reserved execution stays pending in the repository."""
        self._stopped = True
        self._stop_token.cancel("Queue stopped")
        state = self._slot.state
        if isinstance(state, Reserved):
            state.cancellation_token.cancel("Queue stopped")
            self._slot.release(state.id)
        if self._worker is not None and not self._worker.done():
            self._post(_STOP)
            await self._worker
        if self._timer_task is not None:
            await asyncio.gather(self._timer_task, return_exceptions=True)
            self._timer_task = None
        logger.info("Queue stopped")

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _post(self, message: str) -> None:
        self._messages.put_nowait(message)

    async def _run_worker(self) -> None:
        while True:
            message = await self._messages.get()
            try:
                if message == _STOP:
                    return
                await self._reconcile()
            except Exception:
                # No caller to report to; the next message retries.
                logger.exception("Reconciliation failed")
            finally:
                self._messages.task_done()

    async def _reconcile(self) -> None:
        if self._halted or self._stopped or not self._slot.is_idle:
            return

        pending = await self._repository.get_many(
            ExecutionFilters(is_executed=False), order_by=SortOrder.ASC, limit=1
        )
        if not pending or not self._slot.is_idle:
            return
        execution = pending[0]

        token = CancellationToken()
        self._slot.reserve(execution.id, token)
        fire_at = max(execution.executed_at, self._clock.now())
        logger.debug("Reserved %s to fire at %s", execution.id, fire_at.isoformat())
        self._timer_task = asyncio.create_task(
            self._fire(execution, fire_at, token), name=f"deferq-fire-{execution.id}"
        )

    async def _fire(self, execution: Execution, fire_at: datetime, token: CancellationToken) -> None:
        try:
            await run_at(
                fire_at,
                lambda: self._execute(execution),
                token,
                reset_interval_ms=self._timer_reset_interval_ms,
                clock=self._clock,
            )
        except CancellationError as exc:
            logger.debug("Timer for %s cancelled: %s", execution.id, exc.reason)
        except RemoteCallError as exc:
            await self._handle_remote_failure(execution, exc)
        except Exception as exc:
            logger.exception("Firing %s failed", execution.id)
            self._halt(execution, exc)

    async def _execute(self, execution: Execution) -> None:
        current = await self._repository.get_one_by_id(execution.id)
        if current is None or current.is_executed:
            # Withdrawn between reservation and firing.
            self._slot.release(execution.id)
            self._post(_RECONCILE)
            return

        try:
            returned = await self._client.request(*current.args)
        except RemoteCallError:
            raise
        except Exception as exc:
            msg = f"Remote call for {execution.id} failed: {exc}"
            raise RemoteCallError(msg) from exc

        await self._repository.update_one(current.to_executed())
        self._slot.release(execution.id)
        logger.debug("Fired %s", execution.id)
        self._dispatch(
            "post_complete",
            {"execution_id": execution.id, "args": list(current.args), "returned": returned},
        )
        self._post(_RECONCILE)

    async def _handle_remote_failure(self, execution: Execution, exc: RemoteCallError) -> None:
        logger.warning(
            "Remote call for %s failed (policy=%s): %s",
            execution.id,
            self._failure_policy.value,
            exc,
        )
        self._dispatch(
            "post_failure",
            {
                "execution_id": execution.id,
                "args": list(execution.args),
                "error": str(exc),
                "policy": self._failure_policy.value,
            },
        )
        if self._failure_policy is FailurePolicy.HALT:
            self._halt(execution, exc)
            return
        try:
            await self._repository.update_one(execution.to_executed())
        except DeferqError as repo_exc:
            logger.exception("Firing %s failed", execution.id)
            self._halt(execution, repo_exc)
            return
        self._slot.release(execution.id)
        self._post(_RECONCILE)

    def _release_reservation(self, execution_id: str, reason: str) -> bool:
        state = self._slot.state
        if not isinstance(state, Reserved) or state.id != execution_id:
            return False
        state.cancellation_token.cancel(reason)
        self._slot.release(execution_id)
        logger.debug("Released reservation of %s", execution_id)
        return True

    def _halt(self, execution: Execution, exc: Exception) -> None:
        self._slot.release(execution.id)
        self._halted = True
        logger.error("Queue halted at %s: %s", execution.id, exc)

    def _dispatch(self, hook_name: str, payload: dict[str, Any]) -> None:
        """Dispatch a queue event. Plugin failures are warnings, never errors."""
        if self._event_bus is None:
            return
        try:
            self._event_bus.dispatch(hook_name, payload)
        except Exception:
            logger.warning("Event dispatch failed for %s", hook_name, exc_info=True)

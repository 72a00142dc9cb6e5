"""Queue-event delivery to plugins, backed by a write-ahead log.

The gateway fires events from inside the event loop and must never wait
on, or fail because of, a plugin. :class:`EventBus` therefore hands each
event to a small thread pool (or runs it inline with ``sync=True``) and
turns plugin exceptions into warnings.

With an engine, every event is first recorded in ``event_wal`` by
:class:`EventLog`. Rows move ``pending -> completed``, or ``failed``
until ``max_retries`` attempts have been made and then ``dead_letter``.
:meth:`EventBus.drain` re-delivers whatever is still pending or failed,
including events left behind by a process that exited mid-dispatch.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import insert, select, update

from deferq.domain.timeutil import now_utc
from deferq.infrastructure.database.schema import event_wal

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from deferq.plugins.manager import PluginManager

logger = logging.getLogger(__name__)

_FLUSH_TIMEOUT_S = 30


class WalStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


class EventLog:
    """The ``event_wal`` table seen as a log of queue events."""

    def __init__(self, engine: Engine, *, max_retries: int) -> None:
        self._engine = engine
        self._max_retries = max_retries

    def append(self, hook_name: str, payload: dict[str, Any]) -> int:
        # Hook return values can be anything; their string form is enough to replay.
        encoded = json.dumps(payload, default=str)
        with self._engine.begin() as conn:
            result = conn.execute(
                insert(event_wal).values(
                    hook_name=hook_name,
                    payload=encoded,
                    status=WalStatus.PENDING.value,
                    retries=0,
                    created=now_utc().isoformat(),
                )
            )
            return int(result.inserted_primary_key[0])

    def undelivered(self) -> list[tuple[int, str, dict[str, Any]]]:
        """Pending and failed events, oldest first."""
        query = (
            select(event_wal.c.id, event_wal.c.hook_name, event_wal.c.payload)
            .where(event_wal.c.status.in_([WalStatus.PENDING.value, WalStatus.FAILED.value]))
            .order_by(event_wal.c.id)
        )
        with self._engine.connect() as conn:
            return [(row.id, row.hook_name, json.loads(row.payload)) for row in conn.execute(query)]

    def status_of(self, event_id: int) -> WalStatus:
        with self._engine.connect() as conn:
            status = conn.execute(
                select(event_wal.c.status).where(event_wal.c.id == event_id)
            ).scalar_one()
        return WalStatus(status)

    def mark_delivered(self, event_id: int) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                update(event_wal)
                .where(event_wal.c.id == event_id)
                .values(status=WalStatus.COMPLETED.value, completed=now_utc().isoformat())
            )

    def mark_failed(self, event_id: int, error: str) -> WalStatus:
        """Count a failed attempt. Returns the status the event ends up in."""
        with self._engine.begin() as conn:
            attempts = 1 + conn.execute(
                select(event_wal.c.retries).where(event_wal.c.id == event_id)
            ).scalar_one()
            exhausted = attempts >= self._max_retries
            status = WalStatus.DEAD_LETTER if exhausted else WalStatus.FAILED
            conn.execute(
                update(event_wal)
                .where(event_wal.c.id == event_id)
                .values(
                    status=status.value,
                    error=error,
                    retries=attempts,
                    completed=now_utc().isoformat() if exhausted else None,
                )
            )
        return status


class EventBus:
    """Delivers queue events to plugin hooks.

    Parameters:
        plugin_manager: Source of the hooks events are delivered to.
        engine: Engine holding ``event_wal``; None delivers without logging.
        sync: Deliver on the calling thread instead of the pool.
        max_retries: Delivery attempts before an event is dead-lettered.
        max_workers: Size of the delivery pool.
    """

    def __init__(
        self,
        plugin_manager: PluginManager,
        engine: Engine | None = None,
        *,
        sync: bool = False,
        max_retries: int = 3,
        max_workers: int = 2,
    ) -> None:
        self._pm = plugin_manager
        self._log = EventLog(engine, max_retries=max_retries) if engine is not None else None
        self._pool: ThreadPoolExecutor | None = None
        if not sync:
            self._pool = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="deferq-events"
            )
        self._in_flight: list[Future[None]] = []

    def dispatch(self, hook_name: str, payload: dict[str, Any]) -> int | None:
        """Record the event, then deliver it.

        Returns the ``event_wal`` id, or None without a log.
        """
        event_id = self._log.append(hook_name, payload) if self._log is not None else None
        if self._pool is None:
            self._deliver(event_id, hook_name, payload)
        else:
            self._in_flight.append(self._pool.submit(self._deliver, event_id, hook_name, payload))
        return event_id

    def flush(self) -> None:
        """Block until every event dispatched so far has been delivered."""
        in_flight, self._in_flight = self._in_flight, []
        for future in in_flight:
            try:
                future.result(timeout=_FLUSH_TIMEOUT_S)
            except Exception:
                logger.debug("Event delivery did not finish cleanly", exc_info=True)

    def drain(self) -> list[dict[str, Any]]:
        """Re-deliver logged events that are pending or failed, inline.

        Returns one ``{id, hook_name, status}`` entry per event retried.
        """
        self.flush()
        if self._log is None:
            return []
        replayed: list[dict[str, Any]] = []
        for event_id, hook_name, payload in self._log.undelivered():
            self._deliver(event_id, hook_name, payload)
            status = self._log.status_of(event_id)
            replayed.append({"id": event_id, "hook_name": hook_name, "status": status.value})
        return replayed

    def shutdown(self) -> None:
        """Wait for in-flight deliveries and stop the pool. Later events run inline."""
        self.flush()
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def _deliver(self, event_id: int | None, hook_name: str, payload: dict[str, Any]) -> None:
        hook = getattr(self._pm.hook, hook_name, None)
        try:
            if hook is not None:
                hook(**payload)
        except Exception as exc:
            logger.warning("Plugin hook %s failed: %s", hook_name, exc)
            if self._log is not None and event_id is not None:
                self._log.mark_failed(event_id, str(exc))
            return
        if self._log is not None and event_id is not None:
            self._log.mark_delivered(event_id)

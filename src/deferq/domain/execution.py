"""Execution records and their state transitions.

An :class:`Execution` is one request to run an operation at a future
instant. Records are frozen; every transition returns a new instance
which the gateway then persists.

INVARIANT: ``is_executed`` flips from False to True exactly once.
Executed records are history: they stay queryable for admission checks
but are never rescheduled or fired again.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator

from deferq.domain.errors import InvalidArgumentsError
from deferq.domain.ids import generate_execution_id
from deferq.domain.timeutil import truncate_to_millis


class Execution(BaseModel):
    """One deferred call.

    Attributes:
        id: Opaque correlation identifier, assigned at creation.
        args: Positional arguments captured for the deferred call.
        executed_at: Instant at which the call is scheduled to run.
        is_executed: Whether the call has been fired.
    """

    model_config = {"frozen": True}

    id: str
    args: tuple[Any, ...] = ()
    executed_at: datetime
    is_executed: bool = False

    @field_validator("executed_at")
    @classmethod
    def _normalize_instant(cls, value: datetime) -> datetime:
        return truncate_to_millis(value)

    def with_executed_at(self, executed_at: datetime) -> Execution:
        """Return a copy rescheduled to *executed_at*.

        Raises:
            ValueError: If the execution has already been fired.
        """
        if self.is_executed:
            msg = f"Execution {self.id} is already executed and cannot be rescheduled"
            raise ValueError(msg)
        return self.model_copy(update={"executed_at": truncate_to_millis(executed_at)})

    def to_executed(self) -> Execution:
        """Return a copy marked as executed."""
        return self.model_copy(update={"is_executed": True})


def normalize_args(args: Iterable[Any]) -> tuple[Any, ...]:
    """Return *args* as they read back from storage.

    Arguments are persisted as a JSON array, so nested tuples become
    lists and mapping keys become strings. Applying that here keeps every
    repository returning the same values.

    Raises:
        InvalidArgumentsError: If *args* are not JSON-serializable.
    """
    try:
        return tuple(json.loads(json.dumps(list(args))))
    except (TypeError, ValueError) as exc:
        msg = f"Arguments are not JSON-serializable: {exc}"
        raise InvalidArgumentsError(msg) from exc


ExecutionFactory = Callable[[tuple[Any, ...], datetime], Execution]


def create_execution_factory(
    generate_id: Callable[[], str] = generate_execution_id,
) -> ExecutionFactory:
    """Build a factory that stamps new executions with ids from *generate_id*."""

    def factory(args: tuple[Any, ...], executed_at: datetime) -> Execution:
        return Execution(id=generate_id(), args=tuple(args), executed_at=executed_at)

    return factory

"""Error taxonomy for the execution queue.

Everything raised on purpose by deferq derives from :class:`DeferqError`
so callers can catch the whole family in one place. The service layer
converts these into ``ServiceResult`` errors; the gateway raises them.
"""

from __future__ import annotations

from typing import Any


class DeferqError(Exception):
    """Base class for all deferq errors."""

    code = "DEFERQ_ERROR"


class DuplicateIdError(DeferqError):
    """A repository create was called with an id that already exists."""

    code = "DUPLICATE_ID"

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution already exists: {execution_id}")
        self.execution_id = execution_id


class CancellationError(DeferqError):
    """A pending timer wait was aborted through its cancellation token."""

    code = "CANCELLED"

    def __init__(self, reason: Any = None) -> None:
        super().__init__(reason if reason is not None else "Operation was cancelled")
        self.reason = reason


class RepositoryError(DeferqError):
    """A persistence operation failed."""

    code = "REPOSITORY_ERROR"


class RemoteCallError(DeferqError):
    """The remote request for an execution failed."""

    code = "REMOTE_CALL_FAILED"


class QueueStateError(DeferqError):
    """The gateway was used outside its lifecycle (e.g. started twice)."""

    code = "QUEUE_STATE"


class InvalidArgumentsError(DeferqError):
    """Enqueued arguments cannot be stored as JSON."""

    code = "INVALID_ARGS"

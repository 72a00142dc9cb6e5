"""Single-slot reservation state: ``Idle`` or ``Reserved(id, token)``.

INVARIANT: at most one execution is reserved at any instant.
All transitions are synchronous so a check-and-set can never be split
by a suspension point.
"""

from __future__ import annotations

from dataclasses import dataclass

from deferq.domain.errors import QueueStateError
from deferq.scheduling.timer import CancellationToken


@dataclass(frozen=True)
class Idle:
    """No execution is committed to a timer."""


@dataclass(frozen=True)
class Reserved:
    """Execution *id* is committed to the timer guarded by *cancellation_token*."""

    id: str
    cancellation_token: CancellationToken


ReservationState = Idle | Reserved

IDLE = Idle()


class ReservationSlot:
    """Holder for the one in-flight reservation of a queue."""

    def __init__(self) -> None:
        self._state: ReservationState = IDLE

    @property
    def state(self) -> ReservationState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return isinstance(self._state, Idle)

    @property
    def reserved_id(self) -> str | None:
        return self._state.id if isinstance(self._state, Reserved) else None

    def reserve(self, execution_id: str, cancellation_token: CancellationToken) -> Reserved:
        """Move ``Idle -> Reserved``.

        Raises:
            QueueStateError: If another execution already holds the slot.
        """
        if isinstance(self._state, Reserved):
            msg = (
                f"Cannot reserve {execution_id}: slot already holds {self._state.id}"
            )
            raise QueueStateError(msg)
        reserved = Reserved(id=execution_id, cancellation_token=cancellation_token)
        self._state = reserved
        return reserved

    def release(self, execution_id: str) -> bool:
        """Move ``Reserved(execution_id) -> Idle``.

        Returns False (and changes nothing) when the slot is idle or holds
        a different execution.
        """
        if isinstance(self._state, Reserved) and self._state.id == execution_id:
            self._state = IDLE
            return True
        return False

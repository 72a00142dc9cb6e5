"""Pluggy hook specifications for deferq queue events.

``post_complete`` is the domain event external subscribers rely on: it
fires exactly once per execution whose remote call returned. The other
hooks report the rest of the queue lifecycle.
"""

from __future__ import annotations

from typing import Any

import pluggy

hookspec = pluggy.HookspecMarker("deferq")


class DeferqHookSpec:
    """Hook specifications for the deferq plugin system."""

    @hookspec
    def post_enqueue(self, execution_id: str, args: list[Any], executed_at: str) -> None:
        """Called after an execution is persisted by ``enqueue``."""

    @hookspec
    def post_cancel(self, execution_id: str) -> None:
        """Called after a pending execution is removed by ``cancel``."""

    @hookspec
    def post_complete(self, execution_id: str, args: list[Any], returned: Any) -> None:
        """Called after an execution fired and its remote call returned."""

    @hookspec
    def post_failure(self, execution_id: str, args: list[Any], error: str, policy: str) -> None:
        """Called when firing an execution failed."""

"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``. Provides lazy QueueStore initialization, a runner
for the async service layer, and centralized result emission
(stdout/stderr routing + exit codes).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import click

from deferq.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from deferq.config.settings import DeferqSettings
    from deferq.infrastructure.store import QueueStore
    from deferq.services.queue import QueueService
    from deferq.services.result import ServiceResult
    from deferq.transport import RequestClient

T = TypeVar("T")


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Subcommands access it via ``@click.pass_obj``. The store is lazily
    initialized on first use so ``--help`` and ``--version`` never
    trigger database access.
    """

    def __init__(self, settings: DeferqSettings) -> None:
        self.settings = settings
        self._store: QueueStore | None = None

        from deferq.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    @property
    def store(self) -> QueueStore:
        """The queue store (created lazily on first access)."""
        if self._store is None:
            from deferq.infrastructure.store import QueueStore

            self._store = QueueStore(self.settings)
            self._store.init_event_bus(sync=self.settings.sync)
        return self._store

    def queue_service(self, client: RequestClient | None = None) -> QueueService:
        """Build a QueueService over the store. Must be called inside the event loop."""
        from deferq.services.queue import QueueService, create_gateway

        return QueueService(create_gateway(self.store, client))

    def run(self, operation: Callable[[QueueService], Awaitable[T]]) -> T:
        """Run *operation* against a fresh QueueService in a new event loop."""

        async def _main() -> T:
            return await operation(self.queue_service())

        return asyncio.run(_main())

    def close(self) -> None:
        """Release the store. Registered as the root context's close callback."""
        if self._store is not None:
            self._store.close()
            self._store = None

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings are emitted to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            # In JSON mode, warnings are already in the serialized payload.
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)

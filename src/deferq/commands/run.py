"""Command: fire pending executions through a Python callable."""

from __future__ import annotations

import asyncio
import importlib
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import click

from deferq.commands._base import DeferqCommand
from deferq.plugins import hookimpl
from deferq.services.result import ServiceResult

if TYPE_CHECKING:
    from deferq.commands._context import AppContext


def load_target(target: str) -> Callable[..., Any]:
    """Resolve ``module:function`` to the callable it names.

    Raises:
        click.BadParameter: If the target is malformed, missing, or not callable.
    """
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        msg = f"Expected MODULE:FUNCTION, got {target!r}"
        raise click.BadParameter(msg, param_hint="TARGET")
    try:
        obj: Any = importlib.import_module(module_name)
        for attr in attr_path.split("."):
            obj = getattr(obj, attr)
    except (ImportError, AttributeError) as exc:
        msg = f"Cannot load {target!r}: {exc}"
        raise click.BadParameter(msg, param_hint="TARGET") from exc
    if not callable(obj):
        msg = f"{target!r} is not callable"
        raise click.BadParameter(msg, param_hint="TARGET")
    return obj


class RunReport:
    """Collects completion and failure events for the run summary."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.completed: list[str] = []
        self.failed: list[str] = []

    @hookimpl
    def post_complete(self, execution_id: str, args: list[Any], returned: Any) -> None:
        with self._lock:
            if execution_id not in self.completed:
                self.completed.append(execution_id)

    @hookimpl
    def post_failure(self, execution_id: str, args: list[Any], error: str, policy: str) -> None:
        with self._lock:
            if execution_id not in self.failed:
                self.failed.append(execution_id)


@click.command(
    cls=DeferqCommand,
    examples="""\
  deferq run mailer.tasks:send_mail
  deferq run mailer.tasks:send_mail --until-empty
  deferq -v run app.jobs:Worker.handle --until-empty""",
)
@click.argument("target")
@click.option("--until-empty", is_flag=True, help="Exit once the backlog has drained.")
@click.pass_obj
def run(app: AppContext, target: str, until_empty: bool) -> None:
    """Drain the queue, calling TARGET (module:function) with each execution's args.

    Without --until-empty the worker keeps running until interrupted, polling
    every timer_reset_interval_ms for executions enqueued by other commands.
    """
    from deferq.services.queue import QueueService, create_gateway
    from deferq.transport import CallableClient

    func = load_target(target)
    store = app.store
    report = RunReport()
    if store.plugin_manager is not None:
        store.plugin_manager.register_plugin(report, name="run-report")

    async def _main() -> tuple[int, bool, int]:
        gateway = create_gateway(store, CallableClient(func))
        try:
            pending = await gateway.start()
            if until_empty:
                await gateway.drain()
            else:
                await gateway.watch()
        finally:
            await gateway.stop()
        stats = await QueueService(gateway).stats()
        return pending, gateway.is_halted, int(stats.data.get("pending", 0))

    pending, halted, remaining = asyncio.run(_main())
    if store.event_bus is not None:
        store.event_bus.flush()

    data = {
        "target": target,
        "pending_at_start": pending,
        "completed": len(report.completed),
        "failed": len(report.failed),
        "remaining": remaining,
    }
    if halted:
        last = report.failed[-1] if report.failed else None
        result = ServiceResult.failure(
            "run",
            "QUEUE_HALTED",
            "Queue halted after a failed execution",
            detail={**data, "execution_id": last},
        )
    else:
        result = ServiceResult(
            ok=True,
            op="run",
            data=data,
            warnings=[f"Execution failed: {execution_id}" for execution_id in report.failed],
        )
    app.emit(result)

"""Command: withdraw a pending execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from deferq.commands._base import DeferqCommand

if TYPE_CHECKING:
    from deferq.commands._context import AppContext


@click.command(
    cls=DeferqCommand,
    examples="""\
  deferq cancel exe_0123456789abcdef0123456789abcdef
  deferq --json cancel exe_0123456789abcdef0123456789abcdef""",
)
@click.argument("execution_id")
@click.pass_obj
def cancel(app: AppContext, execution_id: str) -> None:
    """Cancel a pending execution by ID. Executed or unknown IDs are left alone."""
    app.emit(app.run(lambda svc: svc.cancel(execution_id)))

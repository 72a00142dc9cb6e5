"""Command: list executions (named list_cmd to avoid shadowing builtins)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from deferq.commands._base import DeferqCommand
from deferq.domain.repository import SortOrder

if TYPE_CHECKING:
    from deferq.commands._context import AppContext


@click.command(
    "list",
    cls=DeferqCommand,
    examples="""\
  deferq list
  deferq list --pending --limit 10
  deferq list --executed --desc
  deferq -q list --pending""",
)
@click.option("--pending", is_flag=True, help="Only executions not yet fired.")
@click.option("--executed", is_flag=True, help="Only executions already fired.")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Max rows.")
@click.option("--desc", is_flag=True, help="Latest scheduled first.")
@click.pass_obj
def list_cmd(
    app: AppContext,
    pending: bool,
    executed: bool,
    limit: int | None,
    desc: bool,
) -> None:
    """List executions in scheduled order."""
    if pending and executed:
        raise click.UsageError("--pending and --executed are mutually exclusive.")

    is_executed: bool | None = None
    if pending:
        is_executed = False
    elif executed:
        is_executed = True

    order_by = SortOrder.DESC if desc else SortOrder.ASC
    app.emit(
        app.run(
            lambda svc: svc.list_executions(
                is_executed=is_executed, limit=limit, order_by=order_by
            )
        )
    )

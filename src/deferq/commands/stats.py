"""Command: queue statistics."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from deferq.commands._base import DeferqCommand

if TYPE_CHECKING:
    from deferq.commands._context import AppContext


@click.command(cls=DeferqCommand, examples="  deferq stats\n  deferq --json stats")
@click.pass_obj
def stats(app: AppContext) -> None:
    """Show pending and executed counts and the next scheduled instant."""
    app.emit(app.run(lambda svc: svc.stats()))

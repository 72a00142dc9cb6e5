"""Command: show the next admissible instant."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from deferq.commands._base import DeferqCommand

if TYPE_CHECKING:
    from deferq.commands._context import AppContext


@click.command("next", cls=DeferqCommand, examples="  deferq next\n  deferq -q next")
@click.pass_obj
def next_cmd(app: AppContext) -> None:
    """Show when a call enqueued right now would be scheduled."""
    app.emit(app.run(lambda svc: svc.next_slot()))

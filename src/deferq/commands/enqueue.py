"""Command: schedule a deferred call."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import click

from deferq.commands._base import DeferqCommand

if TYPE_CHECKING:
    from deferq.commands._context import AppContext


def parse_arg(raw: str) -> Any:
    """Decode *raw* as JSON, falling back to the plain string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@click.command(
    cls=DeferqCommand,
    examples="""\
  deferq enqueue alice@example.com
  deferq enqueue 42 '{"retry": true}' hello
  deferq --json enqueue '[1, 2, 3]'""",
)
@click.argument("args", nargs=-1)
@click.pass_obj
def enqueue(app: AppContext, args: tuple[str, ...]) -> None:
    """Schedule a call with ARGS at the earliest instant the rules admit.

    Each argument is parsed as JSON; anything that is not valid JSON is
    passed as a string.
    """
    parsed = [parse_arg(raw) for raw in args]
    app.emit(app.run(lambda svc: svc.enqueue(parsed)))

"""Command: delete old executed records."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import click

from deferq.commands._base import DeferqCommand

if TYPE_CHECKING:
    from deferq.commands._context import AppContext


def _parse_instant(_ctx: click.Context, _param: click.Parameter, value: str) -> datetime:
    try:
        instant = datetime.fromisoformat(value)
    except ValueError as exc:
        msg = f"Expected an ISO-8601 instant, got {value!r}"
        raise click.BadParameter(msg) from exc
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant


@click.command(
    cls=DeferqCommand,
    examples="""\
  deferq prune --before 2026-01-01T00:00:00Z
  deferq --json prune --before 2026-06-30T12:00:00+02:00""",
)
@click.option(
    "--before",
    required=True,
    callback=_parse_instant,
    help="ISO-8601 cutoff; naive values are read as UTC.",
)
@click.pass_obj
def prune(app: AppContext, before: datetime) -> None:
    """Delete executed records scheduled before the cutoff. Pending ones are kept."""
    app.emit(app.run(lambda svc: svc.prune(before)))

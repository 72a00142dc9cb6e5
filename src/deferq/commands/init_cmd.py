"""Command: queue initialization (named init_cmd to avoid shadowing builtins)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from deferq.commands._base import DeferqCommand
from deferq.domain.rules import FailurePolicy, TimeWindowRateLimitationRule

if TYPE_CHECKING:
    from deferq.commands._context import AppContext

_INIT_EXAMPLES = """\
  deferq init
  deferq init /srv/mailer --rule 1000:5
  deferq init . --rule 60000:100 --rule 1000:5 --failure-policy halt
  deferq init --force --rule 500:1"""


def _parse_rules(
    _ctx: click.Context, _param: click.Parameter, values: tuple[str, ...]
) -> list[TimeWindowRateLimitationRule]:
    rules: list[TimeWindowRateLimitationRule] = []
    for value in values:
        window, sep, count = value.partition(":")
        try:
            if not sep:
                raise ValueError(value)
            rules.append(
                TimeWindowRateLimitationRule(
                    time_window_ms=int(window),
                    execution_count_per_time_window=int(count),
                )
            )
        except ValueError as exc:
            msg = f"Expected WINDOW_MS:COUNT with positive integers, got {value!r}"
            raise click.BadParameter(msg) from exc
    return rules


@click.command("init", cls=DeferqCommand, examples=_INIT_EXAMPLES)
@click.argument("path", required=False, default=".")
@click.option(
    "--rule",
    "rules",
    multiple=True,
    callback=_parse_rules,
    metavar="WINDOW_MS:COUNT",
    help="Admission rule; repeatable. Defaults to 1000:1.",
)
@click.option(
    "--failure-policy",
    type=click.Choice([p.value for p in FailurePolicy], case_sensitive=False),
    default=FailurePolicy.SKIP.value,
    help="What to do when firing an execution fails.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing deferq.toml.")
@click.pass_obj
def init_cmd(
    app: AppContext,
    path: str,
    rules: list[TimeWindowRateLimitationRule],
    failure_policy: str,
    force: bool,
) -> None:
    """Initialize a queue: write deferq.toml and create the database."""
    from deferq.services.init import InitService

    app.emit(
        InitService.init_queue(
            Path(path).resolve(),
            rules=rules or list(app.settings.queue.rules),
            failure_policy=FailurePolicy(failure_policy.lower()),
            force=force,
        )
    )

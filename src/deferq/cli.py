"""Root CLI group for deferq with global flags and command registration."""

from __future__ import annotations

import click

from deferq import __version__
from deferq.commands import register_commands
from deferq.commands._base import DeferqGroup
from deferq.commands._context import AppContext
from deferq.config.settings import DeferqSettings


@click.group(
    cls=DeferqGroup,
    invoke_without_command=True,
    examples="""\
  deferq init --rule 1000:5
  deferq enqueue alice@example.com
  deferq list --pending
  deferq run mailer.tasks:send_mail --until-empty""",
)
@click.version_option(version=__version__, prog_name="deferq")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("--sync", is_flag=True, help="Force synchronous event dispatch.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    sync: bool,
) -> None:
    """deferq — rate-limited deferred execution queue."""
    settings = DeferqSettings.from_cli(
        config_path=config_path,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
        sync=sync,
    )
    app = AppContext(settings)
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)

"""Subcommand modules for deferq.

Provides register_commands() which uses deferred imports to keep
``deferq --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all standalone commands on the root CLI group."""
    from deferq.commands.cancel import cancel
    from deferq.commands.enqueue import enqueue
    from deferq.commands.init_cmd import init_cmd
    from deferq.commands.list_cmd import list_cmd
    from deferq.commands.next_cmd import next_cmd
    from deferq.commands.prune import prune
    from deferq.commands.run import run
    from deferq.commands.stats import stats

    cli.add_command(init_cmd)
    cli.add_command(enqueue)
    cli.add_command(cancel)
    cli.add_command(list_cmd)
    cli.add_command(next_cmd)
    cli.add_command(stats)
    cli.add_command(prune)
    cli.add_command(run)

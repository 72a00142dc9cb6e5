"""Click classes shared by every deferq command.

Each command declares usage examples. ``--examples`` prints them without
running the command or opening the queue, and ``--help`` ends with a
pointer to them instead of inlining them.
"""

from __future__ import annotations

import textwrap
from typing import Any

import click


class ExamplesOption(click.Option):
    """Eager ``--examples`` flag that prints the owning command's examples."""

    def __init__(self) -> None:
        super().__init__(
            ["--examples"],
            is_flag=True,
            expose_value=False,
            is_eager=True,
            callback=self._print_examples,
            help="Show usage examples and exit.",
        )

    @staticmethod
    def _print_examples(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value or ctx.resilient_parsing:
            return
        examples = textwrap.dedent(getattr(ctx.command, "examples", None) or "").strip()
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(textwrap.indent(examples, "  "))
        ctx.exit(0)


class _WithExamples:
    """Stores ``examples`` and wires the option and help pointer for it."""

    examples: str | None

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            self.params.append(ExamplesOption())  # type: ignore[attr-defined]

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        super().format_epilog(ctx, formatter)  # type: ignore[misc]
        if self.examples:
            formatter.write_paragraph()
            formatter.write_text(f"Run '{ctx.command_path} --examples' for usage examples.")


class DeferqCommand(_WithExamples, click.Command):
    """A deferq subcommand."""


class DeferqGroup(_WithExamples, click.Group):
    """The deferq root group. Subcommands default to :class:`DeferqCommand`."""

    command_class = DeferqCommand

"""Rich Console factory and theme for deferq output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract. In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

DEFERQ_THEME = Theme(
    {
        "dq.ok": "bold green",
        "dq.error": "bold red",
        "dq.warning": "bold yellow",
        "dq.op": "bold cyan",
        "dq.key": "dim",
        "dq.id": "bold blue",
        "dq.time": "magenta",
        "dq.pending": "yellow",
        "dq.executed": "green",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes.
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=DEFERQ_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_state(is_executed: bool) -> str:
    """Return the Rich style name for an execution state."""
    return "dq.executed" if is_executed else "dq.pending"

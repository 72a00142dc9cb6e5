"""Rich/JSON output helpers.

The CLI renders ServiceResult for humans (Rich tables and styled
key-value output) or machines (``--json``). The formatter layer picks the
renderer for the requested output mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from deferq.output.renderers import render_quiet, render_result

if TYPE_CHECKING:
    from deferq.services.result import ServiceResult


@dataclass(frozen=True)
class OutputSettings:
    """Output mode resolved from the global CLI flags."""

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False


def format_result(result: ServiceResult, *, settings: OutputSettings | None = None) -> str:
    """Format a ServiceResult for display.

    JSON wins over ``--quiet``; quiet output is one id (or one line) per row.
    """
    settings = settings or OutputSettings()
    if settings.json_output:
        return result.model_dump_json(indent=2)
    if settings.quiet:
        return render_quiet(result)
    return render_result(result, verbose=settings.verbose)

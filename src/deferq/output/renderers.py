"""Operation-specific Rich renderers for ServiceResult.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from deferq.output.console import create_console, get_output, style_for_state

if TYPE_CHECKING:
    from collections.abc import Callable

    from rich.console import Console

    from deferq.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op}: {msg}"

    items = result.data.get("items")
    if isinstance(items, list):
        return "\n".join(str(item.get("id", "")) for item in items if isinstance(item, dict))
    if result.op == "enqueue":
        return str(result.data.get("id", ""))
    if result.op == "next_slot":
        return str(result.data.get("executed_at", ""))

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    label = Text("OK", style="dq.ok")
    op = Text(f"  {result.op}", style="dq.op")
    console.print(label, op)


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="dq.key")
    if key == "id" or key.endswith("_id"):
        v = Text(str(value), style="dq.id")
    elif key.endswith("_at") or key == "before":
        v = Text(str(value), style="dq.time")
    elif isinstance(value, (dict, list)):
        v = Text(json.dumps(value, separators=(",", ":"), default=str))
    else:
        v = Text(str(value))
    console.print(Text.assemble(k, v))


def _render_meta(console: Console, result: ServiceResult) -> None:
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for key, value in result.meta.items():
        console.print(f"    {key}: {value}")


def _execution_table(items: list[dict[str, Any]]) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("ID", style="dq.id", no_wrap=True)
    table.add_column("Executed At", style="dq.time", no_wrap=True)
    table.add_column("State")
    table.add_column("Args")
    for item in items:
        is_executed = bool(item.get("is_executed"))
        table.add_row(
            str(item.get("id", "")),
            str(item.get("executed_at", "")),
            Text("executed" if is_executed else "pending", style=style_for_state(is_executed)),
            json.dumps(item.get("args", []), separators=(",", ":"), default=str),
        )
    return table


# ── Renderers ─────────────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


def _render_executions(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    items = result.data.get("items", [])
    if not items:
        console.print(Text("  No executions.", style="dim"))
        return
    console.print(_execution_table(items))
    console.print(Text(f"  {len(items)} execution(s)", style="dim"))
    if verbose:
        _render_meta(console, result)


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="dq.error")
    op = Text(f"  {result.op}: ", style="dq.op")
    console.print(label, op, msg, sep="")
    if verbose and err is not None:
        console.print(Text(f"  code: {err.code}", style="dim"))
        for key, value in err.detail.items():
            console.print(Text(f"  {key}: {value}", style="dim"))


_OP_RENDERERS: dict[str, Callable[..., None]] = {
    "list_executions": _render_executions,
}

"""Finding the queue a command operates on.

A queue is the directory holding ``deferq.toml``; its database lives in
``.deferq/`` next to that file. Commands run anywhere below the directory
find it by walking up, the way git finds ``.git``. ``DEFERQ_CONFIG`` and
``--config`` name the file directly instead.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from deferq.config.models import DeferqConfig

CONFIG_FILENAME = "deferq.toml"
CONFIG_ENV_VAR = "DEFERQ_CONFIG"


@dataclass(frozen=True)
class QueueLocation:
    """Data root of a queue and the config file that placed it there, if any."""

    root: Path
    config_path: Path | None = None


def find_config(start: Path | None = None) -> Path | None:
    """Return the ``deferq.toml`` governing *start* (default: CWD).

    A ``DEFERQ_CONFIG`` naming a missing file means no config at all; the
    walk is not attempted.
    """
    pinned = os.environ.get(CONFIG_ENV_VAR)
    if pinned:
        candidate = Path(pinned)
        return candidate if candidate.is_file() else None

    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def locate_queue(
    *,
    config_path: str | Path | None = None,
    root: Path | None = None,
) -> QueueLocation:
    """Resolve the config file and data root for one CLI invocation.

    An explicit *config_path* replaces discovery; if it does not exist the
    queue runs on defaults. Unless *root* is given, the queue lives next to
    its config file, or in the CWD when there is none.
    """
    if config_path:
        explicit = Path(config_path)
        found = explicit if explicit.is_file() else None
    else:
        found = find_config(root)

    if root is None:
        root = found.parent if found is not None else Path.cwd()
    return QueueLocation(root=root, config_path=found)


def read_config(path: Path) -> dict[str, Any]:
    """Parse *path* and check it against the ``deferq.toml`` schema.

    Returns the raw table so settings sources can layer it under env vars.

    Raises:
        click.ClickException: If the file is not TOML or a section is invalid.
    """
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise click.ClickException(msg) from exc

    try:
        DeferqConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        msg = f"Invalid config in {path}: {problems}"
        raise click.ClickException(msg) from exc
    return data

"""InitService — create a queue data root.

Writes a sparse ``deferq.toml`` holding the admission rules and creates
``.deferq/deferq.db`` with every table. Re-running on an initialized
root fails unless ``force`` is given; the database itself is never
dropped.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from deferq.config.discovery import CONFIG_FILENAME
from deferq.domain.rules import FailurePolicy, TimeWindowRateLimitationRule
from deferq.infrastructure.database.engine import default_db_path, init_database
from deferq.services.result import ServiceResult

if TYPE_CHECKING:
    from pathlib import Path


def render_config(
    rules: Sequence[TimeWindowRateLimitationRule],
    failure_policy: FailurePolicy,
) -> str:
    """Render the ``[queue]`` section of ``deferq.toml``."""
    lines = [
        "# deferq queue configuration",
        "",
        "[queue]",
        f'failure_policy = "{failure_policy.value}"',
    ]
    for rule in rules:
        lines += [
            "",
            "[[queue.rules]]",
            f"time_window_ms = {rule.time_window_ms}",
            f"execution_count_per_time_window = {rule.execution_count_per_time_window}",
        ]
    return "\n".join(lines) + "\n"


class InitService:
    """Data root initialization."""

    @staticmethod
    def init_queue(
        path: Path,
        *,
        rules: Sequence[TimeWindowRateLimitationRule],
        failure_policy: FailurePolicy = FailurePolicy.SKIP,
        force: bool = False,
    ) -> ServiceResult:
        config_path = path / CONFIG_FILENAME
        if config_path.exists() and not force:
            return ServiceResult.failure(
                "init",
                "ALREADY_INITIALIZED",
                f"{config_path} already exists (use --force to overwrite)",
                detail={"config_path": str(config_path)},
            )
        if not rules:
            return ServiceResult.failure("init", "INVALID_RULES", "At least one rule is required")

        path.mkdir(parents=True, exist_ok=True)
        config_path.write_text(render_config(rules, failure_policy), encoding="utf-8")
        engine = init_database(path)
        engine.dispose()

        return ServiceResult(
            ok=True,
            op="init",
            data={
                "path": str(path),
                "config_path": str(config_path),
                "db_path": str(default_db_path(path)),
                "rules": [rule.model_dump() for rule in rules],
                "failure_policy": failure_policy.value,
            },
        )

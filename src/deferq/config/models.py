"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, ``deferq.toml`` only contains
overrides. A fresh queue needs no config at all.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, PositiveInt

from deferq.domain.rules import FailurePolicy, TimeWindowRateLimitationRule


def _default_rules() -> list[TimeWindowRateLimitationRule]:
    return [TimeWindowRateLimitationRule(time_window_ms=1000, execution_count_per_time_window=1)]


class QueueConfig(BaseModel):
    """[queue] section."""

    model_config = {"frozen": True}

    rules: list[TimeWindowRateLimitationRule] = Field(default_factory=_default_rules)
    timer_reset_interval_ms: PositiveInt = 1000
    failure_policy: FailurePolicy = FailurePolicy.SKIP


class DatabaseConfig(BaseModel):
    """[database] section. ``path`` is relative to the data root when not absolute."""

    model_config = {"frozen": True}

    path: Path | None = None


class EventsConfig(BaseModel):
    """[events] section."""

    model_config = {"frozen": True}

    wal: bool = True
    max_retries: PositiveInt = 3


class DeferqConfig(BaseModel):
    """Root configuration composing all sections."""

    model_config = {"frozen": True}

    queue: QueueConfig = Field(default_factory=QueueConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)

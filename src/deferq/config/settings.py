"""Runtime settings for one deferq invocation.

Values are layered, later layers losing to earlier ones:

1. keyword arguments to :meth:`DeferqSettings.from_cli` (the global CLI flags)
2. ``DEFERQ_*`` environment variables, ``__`` separating nested keys
3. the queue's ``deferq.toml``
4. defaults declared on the section models
"""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from deferq.config.discovery import locate_queue, read_config
from deferq.config.models import DatabaseConfig, EventsConfig, QueueConfig
from deferq.infrastructure.database.engine import default_db_path

# Config file for the settings object currently being built.
_building_from: ContextVar[Path | None] = ContextVar("deferq_config_file", default=None)


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Settings layer backed by a queue's ``deferq.toml``."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._table = read_config(toml_path) if toml_path is not None else {}

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self._table.get(field_name), field_name, field_name in self._table

    def __call__(self) -> dict[str, Any]:
        return self._table


class DeferqSettings(BaseSettings):
    """Everything a command needs to open and drive a queue.

    Attributes:
        data_root: Directory the queue's ``.deferq/`` lives in.
        config_path: The ``deferq.toml`` that was read, or None.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        env_prefix="DEFERQ_",
        env_nested_delimiter="__",
    )

    data_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False
    sync: bool = False

    queue: QueueConfig = Field(default_factory=QueueConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)

    @property
    def db_path(self) -> Path:
        """SQLite file; a relative ``[database] path`` is taken from data_root."""
        configured = self.database.path
        if configured is None:
            return default_db_path(self.data_root)
        return configured if configured.is_absolute() else self.data_root / configured

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml = TomlSettingsSource(settings_cls, _building_from.get())
        return init_settings, env_settings, toml

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        data_root: Path | None = None,
        **cli_flags: Any,
    ) -> DeferqSettings:
        """Locate the queue, then build its settings with *cli_flags* on top.

        Raises:
            click.ClickException: If the located ``deferq.toml`` is invalid.
        """
        location = locate_queue(config_path=config_path, root=data_root)
        token = _building_from.set(location.config_path)
        try:
            return cls(data_root=location.root, config_path=location.config_path, **cli_flags)
        finally:
            _building_from.reset(token)

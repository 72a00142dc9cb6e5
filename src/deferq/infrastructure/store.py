"""QueueStore — the single dependency injected into the queue service.

The store owns the SQLite engine, the execution repository built on it,
and (once :meth:`init_event_bus` is called) the plugin event bus. The
CLI creates one lazily per invocation and closes it on exit.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from deferq.infrastructure.database.engine import init_database
from deferq.infrastructure.repositories.sql import SqlExecutionRepository

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from sqlalchemy.engine import Engine

    from deferq.config.settings import DeferqSettings
    from deferq.plugins.event_bus import EventBus
    from deferq.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


class QueueStore:
    """Persistent queue state for one data root."""

    def __init__(self, settings: DeferqSettings) -> None:
        self._settings = settings
        self._engine: Engine = init_database(settings.data_root, settings.db_path)
        self._repository = SqlExecutionRepository(self._engine)
        self._plugin_manager: PluginManager | None = None
        self._event_bus: EventBus | None = None

    @property
    def root(self) -> Path:
        """The data root directory (holds ``.deferq/``)."""
        return self._settings.data_root

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def repository(self) -> SqlExecutionRepository:
        return self._repository

    @property
    def settings(self) -> DeferqSettings:
        return self._settings

    @property
    def plugin_manager(self) -> PluginManager | None:
        return self._plugin_manager

    @property
    def event_bus(self) -> EventBus | None:
        """The plugin event bus (None if not initialized)."""
        return self._event_bus

    def init_event_bus(self, *, sync: bool = False, plugins: Sequence[object] = ()) -> None:
        """Initialize the plugin event bus.

        Loads entry-point plugins, registers any extra *plugins* given by
        the caller, and wires up the EventBus. Events go through the
        ``event_wal`` table unless ``[events] wal = false``.
        """
        from deferq.plugins.event_bus import EventBus
        from deferq.plugins.manager import PluginManager

        pm = PluginManager()
        pm.load_entry_points()
        for plugin in plugins:
            pm.register_plugin(plugin)

        events = self._settings.events
        self._plugin_manager = pm
        self._event_bus = EventBus(
            pm,
            self._engine if events.wal else None,
            sync=sync,
            max_retries=events.max_retries,
        )
        logger.debug("Event bus ready with plugins: %s", pm.list_plugin_names())

    def close(self) -> None:
        """Flush pending events and release the engine."""
        if self._event_bus is not None:
            self._event_bus.shutdown()
            self._event_bus = None
        self._engine.dispose()

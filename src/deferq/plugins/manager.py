"""Registry of queue-event plugins.

A plugin is any object with ``@hookimpl`` methods for the hooks in
:mod:`deferq.plugins.hookspecs`. Installed packages contribute plugins
through the ``deferq.plugins`` entry-point group; in-process listeners,
such as the report kept by ``deferq run``, are registered directly.
"""

from __future__ import annotations

import inspect
import logging

import pluggy

from deferq.plugins.hookspecs import DeferqHookSpec

PROJECT_NAME = "deferq"
ENTRYPOINT_GROUP = "deferq.plugins"

logger = logging.getLogger(__name__)


class PluginManager:
    """Queue-event plugins over a pluggy manager."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(DeferqHookSpec)
        self._entry_points_loaded = False

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    @property
    def is_loaded(self) -> bool:
        """Whether entry-point plugins have been loaded."""
        return self._entry_points_loaded

    def load_entry_points(self) -> list[str]:
        """Register the plugins installed packages advertise. Runs once.

        Returns the names of every registered plugin.
        """
        if not self._entry_points_loaded:
            count = self._pm.load_setuptools_entrypoints(ENTRYPOINT_GROUP)
            self._instantiate_class_plugins()
            self._entry_points_loaded = True
            logger.debug("Loaded %d entry-point plugin(s)", count)
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        name = name or type(plugin).__name__
        self._pm.register(plugin, name=name)
        logger.debug("Registered plugin %s", name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    def list_plugin_names(self) -> list[str]:
        return [name for name, _ in self._pm.list_name_plugin()]

    def _instantiate_class_plugins(self) -> None:
        # An entry point may name a class; its hooks need an instance for ``self``.
        for name, plugin in self._pm.list_name_plugin():
            if not inspect.isclass(plugin):
                continue
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning("Skipping plugin %s: cannot instantiate", name, exc_info=True)
                continue
            self._pm.register(instance, name=name)

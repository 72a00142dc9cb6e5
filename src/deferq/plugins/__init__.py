"""Extension layer — queue events delivered to plugins via pluggy.

INVARIANT: Plugin failures are warnings, never errors.
"""

import pluggy

from deferq.plugins.event_bus import EventBus
from deferq.plugins.manager import PluginManager

hookimpl = pluggy.HookimplMarker("deferq")

__all__ = ["EventBus", "PluginManager", "hookimpl"]

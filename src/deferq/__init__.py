"""deferq — rate-limited deferred execution queue."""

__version__ = "0.1.0"

"""Execution repository implementations."""

from deferq.infrastructure.repositories.memory import InMemoryExecutionRepository
from deferq.infrastructure.repositories.sql import SqlExecutionRepository

__all__ = ["InMemoryExecutionRepository", "SqlExecutionRepository"]

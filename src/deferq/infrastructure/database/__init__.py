"""SQLite database engine and schema via SQLAlchemy Core."""

from deferq.infrastructure.database.engine import (
    create_db_engine,
    default_db_path,
    init_database,
)
from deferq.infrastructure.database.schema import event_wal, executions, metadata

__all__ = [
    "create_db_engine",
    "default_db_path",
    "event_wal",
    "executions",
    "init_database",
    "metadata",
]

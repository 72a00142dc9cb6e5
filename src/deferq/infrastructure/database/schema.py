"""SQLAlchemy Core table definitions for the deferq database.

Instants are stored as integer epoch milliseconds so range filters and
ordering are exact. ``seq`` preserves insertion order and breaks ties
between executions scheduled for the same millisecond.
"""

from __future__ import annotations

from sqlalchemy import Column, Index, Integer, MetaData, Table, Text

metadata = MetaData()

executions = Table(
    "executions",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", Text, nullable=False, unique=True),
    Column("args", Text, nullable=False),  # JSON array
    Column("executed_at", Integer, nullable=False),  # epoch ms
    Column("is_executed", Integer, nullable=False, default=0, server_default="0"),
    Column("created", Text, nullable=False),
)

Index("ix_executions_executed_at", executions.c.executed_at)
Index("ix_executions_pending", executions.c.is_executed, executions.c.executed_at)

event_wal = Table(
    "event_wal",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hook_name", Text, nullable=False),
    Column("payload", Text, nullable=False),  # JSON
    Column("status", Text, nullable=False),
    Column("error", Text),
    Column("retries", Integer, default=0, server_default="0"),
    Column("created", Text, nullable=False),
    Column("completed", Text),
)

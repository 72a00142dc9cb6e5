"""Database engine setup for SQLite with WAL mode.

The queue database lives at ``{data_dir}/.deferq/deferq.db`` unless an
explicit path is configured. SQLAlchemy Core (not ORM) is used: the
repository maps rows to frozen domain records itself, so sessions and
identity maps would add nothing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from deferq.infrastructure.database.schema import metadata

DATA_DIRNAME = ".deferq"
DB_FILENAME = "deferq.db"


def create_db_engine(db_path: Path | str) -> Engine:
    """Create a SQLite engine with WAL mode enabled.

    ``":memory:"`` yields a private in-memory database (tests).
    """
    url = "sqlite://" if str(db_path) == ":memory:" else f"sqlite:///{db_path}"
    engine = create_engine(url, echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def default_db_path(data_dir: Path) -> Path:
    """Return ``{data_dir}/.deferq/deferq.db``."""
    return data_dir / DATA_DIRNAME / DB_FILENAME


def init_database(data_dir: Path, db_path: Path | None = None) -> Engine:
    """Initialize the deferq database.

    Creates the ``.deferq/`` directory (and ``plugins/`` inside it) plus
    all tables from :data:`schema.metadata`. Idempotent — safe to call on
    an existing database.

    Returns the engine ready for use.
    """
    deferq_dir = data_dir / DATA_DIRNAME
    deferq_dir.mkdir(parents=True, exist_ok=True)
    (deferq_dir / "plugins").mkdir(exist_ok=True)

    path = db_path or default_db_path(data_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_db_engine(path)
    metadata.create_all(engine)
    return engine

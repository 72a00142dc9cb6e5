"""SQLite-backed execution repository (SQLAlchemy Core).

Statements run inline on the calling task: SQLite calls are short and
local, and keeping them on the event loop thread means the queue never
shares a connection across threads. The methods stay coroutines so the
repository satisfies the async contract.

Every ``SQLAlchemyError`` is re-raised as
:class:`~deferq.domain.errors.RepositoryError`; an id collision on insert
becomes :class:`~deferq.domain.errors.DuplicateIdError`.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import Select, delete, func, insert, select, update
from sqlalchemy.engine import Engine, RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from deferq.domain.errors import DuplicateIdError, RepositoryError
from deferq.domain.execution import Execution
from deferq.domain.repository import ExecutionFilters, SortOrder, TimeRange
from deferq.domain.timeutil import from_unix_millis, now_utc, to_unix_millis
from deferq.infrastructure.database.schema import executions


@contextmanager
def _translate_errors(op: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        msg = f"{op} failed: {exc}"
        raise RepositoryError(msg) from exc


def _dump_args(execution: Execution) -> str:
    try:
        return json.dumps(list(execution.args))
    except (TypeError, ValueError) as exc:
        msg = f"Arguments of {execution.id} are not JSON-serializable: {exc}"
        raise RepositoryError(msg) from exc


def _to_execution(row: RowMapping) -> Execution:
    return Execution(
        id=row["id"],
        args=tuple(json.loads(row["args"])),
        executed_at=from_unix_millis(row["executed_at"]),
        is_executed=bool(row["is_executed"]),
    )


class SqlExecutionRepository:
    """Persists executions in the ``executions`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    async def get_one_by_id(self, execution_id: str) -> Execution | None:
        stmt = select(executions).where(executions.c.id == execution_id)
        with _translate_errors("get_one_by_id"), self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return _to_execution(row) if row is not None else None

    async def get_many(
        self,
        filters: ExecutionFilters | None = None,
        *,
        order_by: SortOrder = SortOrder.ASC,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[Execution]:
        stmt = self._apply_filters(select(executions), filters)
        if order_by is SortOrder.DESC:
            stmt = stmt.order_by(executions.c.executed_at.desc(), executions.c.seq.desc())
        else:
            stmt = stmt.order_by(executions.c.executed_at.asc(), executions.c.seq.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        with _translate_errors("get_many"), self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_execution(row) for row in rows]

    async def count(self, filters: ExecutionFilters | None = None) -> int:
        stmt = self._apply_filters(select(func.count(executions.c.seq)), filters)
        with _translate_errors("count"), self._engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one() or 0)

    async def create_one(self, execution: Execution) -> None:
        values = {
            "id": execution.id,
            "args": _dump_args(execution),
            "executed_at": to_unix_millis(execution.executed_at),
            "is_executed": int(execution.is_executed),
            "created": now_utc().isoformat(),
        }
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(executions).values(**values))
        except IntegrityError as exc:
            raise DuplicateIdError(execution.id) from exc
        except SQLAlchemyError as exc:
            msg = f"create_one failed: {exc}"
            raise RepositoryError(msg) from exc

    async def update_one(self, execution: Execution) -> None:
        stmt = (
            update(executions)
            .where(executions.c.id == execution.id)
            .values(
                args=_dump_args(execution),
                executed_at=to_unix_millis(execution.executed_at),
                is_executed=int(execution.is_executed),
            )
        )
        with _translate_errors("update_one"), self._engine.begin() as conn:
            conn.execute(stmt)

    async def delete_one_by_id(self, execution_id: str) -> None:
        with _translate_errors("delete_one_by_id"), self._engine.begin() as conn:
            conn.execute(delete(executions).where(executions.c.id == execution_id))

    async def delete_executed_before(self, instant: datetime) -> int:
        stmt = delete(executions).where(
            executions.c.is_executed == 1,
            executions.c.executed_at < to_unix_millis(instant),
        )
        with _translate_errors("delete_executed_before"), self._engine.begin() as conn:
            return int(conn.execute(stmt).rowcount or 0)

    @staticmethod
    def _apply_filters(stmt: Select[Any], filters: ExecutionFilters | None) -> Select[Any]:
        if filters is None:
            return stmt
        column = executions.c.executed_at
        if isinstance(filters.executed_at, TimeRange):
            bounds = filters.executed_at
            if bounds.start is not None:
                start = to_unix_millis(bounds.start)
                stmt = stmt.where(column >= start if bounds.include_start else column > start)
            if bounds.end is not None:
                stmt = stmt.where(column <= to_unix_millis(bounds.end))
        elif filters.executed_at is not None:
            stmt = stmt.where(column == to_unix_millis(filters.executed_at))
        if filters.is_executed is not None:
            stmt = stmt.where(executions.c.is_executed == int(filters.is_executed))
        return stmt

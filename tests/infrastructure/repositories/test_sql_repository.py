"""SQL-specific tests for SqlExecutionRepository."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Engine

from deferq.domain.errors import RepositoryError
from deferq.domain.execution import Execution
from deferq.infrastructure.database.engine import init_database
from deferq.infrastructure.database.schema import executions
from deferq.infrastructure.repositories import SqlExecutionRepository

T0 = datetime(2026, 1, 1, tzinfo=UTC)


class TestSqlExecutionRepository:
    @pytest.mark.asyncio
    async def test_stores_epoch_millis(
        self, sql_repo: SqlExecutionRepository, db_engine: Engine
    ) -> None:
        await sql_repo.create_one(Execution(id="exe_a", args=(1, "b"), executed_at=T0))
        with db_engine.connect() as conn:
            row = conn.execute(select(executions)).mappings().one()
        assert row["executed_at"] == 1_767_225_600_000
        assert row["args"] == '[1, "b"]'
        assert row["is_executed"] == 0
        assert row["created"]

    @pytest.mark.asyncio
    async def test_non_json_args_rejected(self, sql_repo: SqlExecutionRepository) -> None:
        execution = Execution(id="exe_a", args=(object(),), executed_at=T0)
        with pytest.raises(RepositoryError, match="JSON"):
            await sql_repo.create_one(execution)
        assert await sql_repo.count() == 0

    @pytest.mark.asyncio
    async def test_database_errors_translated(self, tmp_path: Path) -> None:
        engine = init_database(tmp_path)
        with engine.begin() as conn:
            executions.drop(conn)
        repo = SqlExecutionRepository(engine)
        with pytest.raises(RepositoryError, match="get_one_by_id"):
            await repo.get_one_by_id("exe_a")
        engine.dispose()

    @pytest.mark.asyncio
    async def test_survives_new_engine(self, tmp_path: Path) -> None:
        first = init_database(tmp_path)
        await SqlExecutionRepository(first).create_one(Execution(id="exe_a", executed_at=T0))
        first.dispose()

        second = init_database(tmp_path)
        stored = await SqlExecutionRepository(second).get_one_by_id("exe_a")
        second.dispose()
        assert stored == Execution(id="exe_a", executed_at=T0)

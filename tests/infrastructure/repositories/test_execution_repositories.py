"""Contract tests run against both execution repository implementations."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from deferq.domain.errors import DuplicateIdError
from deferq.domain.execution import Execution
from deferq.domain.repository import ExecutionFilters, SortOrder, TimeRange

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _at(ms: int) -> datetime:
    return T0 + timedelta(milliseconds=ms)


def _execution(name: str, ms: int, *args: Any, executed: bool = False) -> Execution:
    return Execution(id=f"exe_{name}", args=args, executed_at=_at(ms), is_executed=executed)


async def _seed(repository: Any, *executions: Execution) -> None:
    for execution in executions:
        await repository.create_one(execution)


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test_round_trip(self, repository: Any) -> None:
        execution = _execution("a", 1500, 1, "two", {"three": [3]})
        await repository.create_one(execution)
        assert await repository.get_one_by_id("exe_a") == Execution(
            id="exe_a", args=(1, "two", {"three": [3]}), executed_at=_at(1500)
        )

    @pytest.mark.asyncio
    async def test_missing_returns_none(self, repository: Any) -> None:
        assert await repository.get_one_by_id("exe_nope") is None

    @pytest.mark.asyncio
    async def test_duplicate_id(self, repository: Any) -> None:
        await repository.create_one(_execution("a", 0))
        with pytest.raises(DuplicateIdError) as exc_info:
            await repository.create_one(_execution("a", 10))
        assert exc_info.value.execution_id == "exe_a"
        assert await repository.count() == 1

    @pytest.mark.asyncio
    async def test_sub_millisecond_precision_dropped(self, repository: Any) -> None:
        execution = Execution(id="exe_a", executed_at=T0 + timedelta(microseconds=1_999))
        await repository.create_one(execution)
        stored = await repository.get_one_by_id("exe_a")
        assert stored.executed_at == _at(1)


class TestGetMany:
    @pytest.mark.asyncio
    async def test_ascending_with_insertion_tie_break(self, repository: Any) -> None:
        await _seed(
            repository,
            _execution("late", 200),
            _execution("tie1", 100),
            _execution("early", 0),
            _execution("tie2", 100),
        )
        result = await repository.get_many()
        assert [e.id for e in result] == ["exe_early", "exe_tie1", "exe_tie2", "exe_late"]

    @pytest.mark.asyncio
    async def test_descending(self, repository: Any) -> None:
        await _seed(repository, _execution("a", 0), _execution("b", 100), _execution("c", 100))
        result = await repository.get_many(order_by=SortOrder.DESC)
        assert [e.id for e in result] == ["exe_c", "exe_b", "exe_a"]

    @pytest.mark.asyncio
    async def test_offset_and_limit(self, repository: Any) -> None:
        await _seed(repository, *(_execution(str(i), i * 10) for i in range(6)))
        result = await repository.get_many(offset=2, limit=3)
        assert [e.id for e in result] == ["exe_2", "exe_3", "exe_4"]

    @pytest.mark.asyncio
    async def test_filter_is_executed(self, repository: Any) -> None:
        await _seed(
            repository,
            _execution("done", 0, executed=True),
            _execution("todo", 10),
        )
        pending = await repository.get_many(ExecutionFilters(is_executed=False))
        executed = await repository.get_many(ExecutionFilters(is_executed=True))
        assert [e.id for e in pending] == ["exe_todo"]
        assert [e.id for e in executed] == ["exe_done"]

    @pytest.mark.asyncio
    async def test_filter_time_range(self, repository: Any) -> None:
        await _seed(repository, *(_execution(str(ms), ms) for ms in (0, 100, 200, 300)))
        inclusive = await repository.get_many(
            ExecutionFilters(executed_at=TimeRange(start=_at(100), end=_at(200)))
        )
        exclusive = await repository.get_many(
            ExecutionFilters(executed_at=TimeRange(start=_at(100), include_start=False))
        )
        assert [e.id for e in inclusive] == ["exe_100", "exe_200"]
        assert [e.id for e in exclusive] == ["exe_200", "exe_300"]

    @pytest.mark.asyncio
    async def test_filter_exact_instant(self, repository: Any) -> None:
        await _seed(repository, _execution("a", 100), _execution("b", 101))
        result = await repository.get_many(ExecutionFilters(executed_at=_at(100)))
        assert [e.id for e in result] == ["exe_a"]


class TestCount:
    @pytest.mark.asyncio
    async def test_count_with_filters(self, repository: Any) -> None:
        await _seed(
            repository,
            _execution("a", 0, executed=True),
            _execution("b", 50),
            _execution("c", 150),
        )
        assert await repository.count() == 3
        assert await repository.count(ExecutionFilters(is_executed=False)) == 2
        after_zero = ExecutionFilters(executed_at=TimeRange(start=_at(0), include_start=False))
        assert await repository.count(after_zero) == 2


class TestUpdateAndDelete:
    @pytest.mark.asyncio
    async def test_update_replaces_record(self, repository: Any) -> None:
        execution = _execution("a", 0, "x")
        await repository.create_one(execution)
        await repository.update_one(execution.with_executed_at(_at(500)).to_executed())
        stored = await repository.get_one_by_id("exe_a")
        assert stored.executed_at == _at(500)
        assert stored.is_executed is True
        assert stored.args == ("x",)

    @pytest.mark.asyncio
    async def test_update_keeps_insertion_order(self, repository: Any) -> None:
        await _seed(repository, _execution("first", 100), _execution("second", 0))
        first = await repository.get_one_by_id("exe_first")
        await repository.update_one(first.with_executed_at(_at(0)))
        result = await repository.get_many()
        assert [e.id for e in result] == ["exe_first", "exe_second"]

    @pytest.mark.asyncio
    async def test_update_missing_is_noop(self, repository: Any) -> None:
        await repository.update_one(_execution("ghost", 0))
        assert await repository.get_one_by_id("exe_ghost") is None

    @pytest.mark.asyncio
    async def test_delete(self, repository: Any) -> None:
        await _seed(repository, _execution("a", 0), _execution("b", 0))
        await repository.delete_one_by_id("exe_a")
        assert await repository.get_one_by_id("exe_a") is None
        assert await repository.count() == 1

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, repository: Any) -> None:
        await repository.delete_one_by_id("exe_ghost")
        assert await repository.count() == 0

    @pytest.mark.asyncio
    async def test_delete_executed_before(self, repository: Any) -> None:
        await _seed(
            repository,
            _execution("old_done", 0, executed=True),
            _execution("old_pending", 10),
            _execution("edge_done", 100, executed=True),
            _execution("new_done", 200, executed=True),
        )
        deleted = await repository.delete_executed_before(_at(100))
        assert deleted == 1
        remaining = {e.id for e in await repository.get_many()}
        assert remaining == {"exe_old_pending", "exe_edge_done", "exe_new_done"}

"""Shared pytest fixtures for deferq tests."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from deferq.infrastructure.database.engine import init_database
from deferq.infrastructure.repositories import (
    InMemoryExecutionRepository,
    SqlExecutionRepository,
)
from deferq.plugins import hookimpl

EPOCH = datetime(2026, 1, 1, tzinfo=UTC)


class VirtualClock:
    """Deterministic clock: time only moves when a test calls :meth:`advance`.

    ``sleep`` parks the caller on a heap of deadlines. ``advance`` wakes
    sleepers in deadline order, moving ``now`` to each deadline before
    waking it and letting the event loop settle in between.
    """

    def __init__(self, start: datetime = EPOCH) -> None:
        self._now = start
        self._waiters: list[tuple[datetime, int, asyncio.Future[None]]] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        deadline = self._now + timedelta(seconds=seconds)
        heapq.heappush(self._waiters, (deadline, next(self._seq), future))
        await future

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, _, future in self._waiters if not future.done())

    async def settle(self, rounds: int = 500) -> None:
        """Yield to the event loop until ready callbacks have run."""
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def advance(self, ms: float) -> None:
        """Move time forward by *ms*, waking every sleeper that falls due."""
        target = self._now + timedelta(milliseconds=ms)
        await self.settle()
        while self._waiters and self._waiters[0][0] <= target:
            deadline, _, future = heapq.heappop(self._waiters)
            if future.done():
                continue
            self._now = max(self._now, deadline)
            future.set_result(None)
            await self.settle()
        self._now = target
        await self.settle()

    def at(self, ms: int) -> datetime:
        """Instant *ms* milliseconds after the clock's start."""
        return EPOCH + timedelta(milliseconds=ms)


class RecordingClient:
    """Request client that records every call with the clock time it ran at.

    Calls whose first argument is in ``fail_on`` raise ``RuntimeError``.
    """

    def __init__(self, clock: VirtualClock) -> None:
        self._clock = clock
        self.calls: list[tuple[tuple[Any, ...], datetime]] = []
        self.fail_on: set[Any] = set()

    async def request(self, *args: Any) -> Any:
        self.calls.append((args, self._clock.now()))
        if args and args[0] in self.fail_on:
            msg = f"boom: {args[0]}"
            raise RuntimeError(msg)
        return {"echo": list(args)}

    @property
    def called_args(self) -> list[tuple[Any, ...]]:
        return [args for args, _ in self.calls]


class RecordingPlugin:
    """Plugin that records every queue event."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    @hookimpl
    def post_enqueue(self, execution_id: str, args: list[Any], executed_at: str) -> None:
        self.calls.append(
            ("post_enqueue", {"execution_id": execution_id, "args": args, "executed_at": executed_at})
        )

    @hookimpl
    def post_cancel(self, execution_id: str) -> None:
        self.calls.append(("post_cancel", {"execution_id": execution_id}))

    @hookimpl
    def post_complete(self, execution_id: str, args: list[Any], returned: Any) -> None:
        self.calls.append(
            ("post_complete", {"execution_id": execution_id, "args": args, "returned": returned})
        )

    @hookimpl
    def post_failure(self, execution_id: str, args: list[Any], error: str, policy: str) -> None:
        self.calls.append(
            (
                "post_failure",
                {"execution_id": execution_id, "args": args, "error": error, "policy": policy},
            )
        )

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def of(self, hook_name: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.calls if name == hook_name]


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root and deferq logger state changed by configure_logging."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    deferq_logger = logging.getLogger("deferq")
    deferq_level = deferq_logger.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    deferq_logger.setLevel(deferq_level)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def client(clock: VirtualClock) -> RecordingClient:
    return RecordingClient(clock)


@pytest.fixture
def recording_plugin() -> RecordingPlugin:
    return RecordingPlugin()


@pytest.fixture
def memory_repo() -> InMemoryExecutionRepository:
    return InMemoryExecutionRepository()


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sql_repo(db_engine: Engine) -> SqlExecutionRepository:
    return SqlExecutionRepository(db_engine)


@pytest.fixture(params=["memory", "sql"])
def repository(
    request: pytest.FixtureRequest,
    memory_repo: InMemoryExecutionRepository,
    db_engine: Engine,
) -> InMemoryExecutionRepository | SqlExecutionRepository:
    """Both repository implementations, for contract tests."""
    if request.param == "memory":
        return memory_repo
    return SqlExecutionRepository(db_engine)


@pytest.fixture
def write_module(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Callable[[str, str], None]:
    """Write an importable module into a temp dir on ``sys.path``."""
    modules_dir = tmp_path / "modules"
    modules_dir.mkdir()
    monkeypatch.syspath_prepend(str(modules_dir))

    def _write(name: str, source: str) -> None:
        (modules_dir / f"{name}.py").write_text(source, encoding="utf-8")

    return _write


@pytest.fixture
def _isolated_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp dir so the CLI creates an isolated queue.

    Use via ``@pytest.mark.usefixtures("_isolated_root")`` on command test
    classes.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DEFERQ_CONFIG", raising=False)

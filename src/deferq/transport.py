"""Request/response correlation over an arbitrary message channel.

A :class:`Client` turns ``await client.request(*args)`` into a
:class:`Request` message carrying a fresh correlation id, posts it on a
:class:`Terminal`, and resolves when the :class:`Response` with the same
id comes back. Any number of requests may be in flight and responses may
arrive in any order. A :class:`Server` on the other end of the channel
answers each request by calling its function.

:class:`LocalTerminal` wires both ends inside one event loop.
:class:`CallableClient` skips the channel entirely and calls a function
directly; the CLI ``run`` command uses it. :class:`DetachedClient` backs
the CLI commands that only edit the backlog.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from deferq.domain.errors import RemoteCallError
from deferq.domain.ids import generate_correlation_id

logger = logging.getLogger(__name__)

M_out = TypeVar("M_out", contravariant=True)
M_in = TypeVar("M_in", covariant=True)
Out = TypeVar("Out")
In = TypeVar("In")


@dataclass(frozen=True)
class Request:
    id: str
    args: tuple[Any, ...]


@dataclass(frozen=True)
class Response:
    id: str
    returned: Any = None
    error: str | None = None


class Terminal(Protocol[M_out, M_in]):
    """One end of a channel: posts outgoing messages, delivers incoming ones."""

    def post(self, message: M_out) -> None: ...

    def add_listener(self, handler: Callable[[M_in], None]) -> None: ...


class RequestClient(Protocol):
    """Anything that can perform the deferred call for an execution."""

    async def request(self, *args: Any) -> Any: ...


class LocalTerminal(Generic[Out, In]):
    """In-process terminal. Messages are delivered on the next loop iteration."""

    def __init__(self) -> None:
        self._peer: LocalTerminal[In, Out] | None = None
        self._listeners: list[Callable[[In], None]] = []

    @classmethod
    def pair(cls) -> tuple[LocalTerminal[Request, Response], LocalTerminal[Response, Request]]:
        """Return ``(client_end, server_end)`` connected to each other."""
        client_end: LocalTerminal[Request, Response] = LocalTerminal()
        server_end: LocalTerminal[Response, Request] = LocalTerminal()
        client_end._peer = server_end
        server_end._peer = client_end
        return client_end, server_end

    def post(self, message: Out) -> None:
        if self._peer is None:
            msg = "LocalTerminal is not connected; use LocalTerminal.pair()"
            raise RuntimeError(msg)
        asyncio.get_running_loop().call_soon(self._peer._deliver, message)

    def add_listener(self, handler: Callable[[In], None]) -> None:
        self._listeners.append(handler)

    def _deliver(self, message: In) -> None:
        for handler in list(self._listeners):
            handler(message)


class Client:
    """Calls a function served by a :class:`Server` on the other end of *terminal*."""

    def __init__(self, terminal: Terminal[Request, Response]) -> None:
        self._terminal = terminal
        self._pending: dict[str, asyncio.Future[Any]] = {}
        terminal.add_listener(self._on_response)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request(self, *args: Any) -> Any:
        """Send *args* and wait for the matching response.

        Raises:
            RemoteCallError: If the server reported a failure.
        """
        request = Request(id=generate_correlation_id(), args=tuple(args))
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future
        try:
            self._terminal.post(request)
            return await future
        finally:
            self._pending.pop(request.id, None)

    def _on_response(self, response: Response) -> None:
        future = self._pending.get(response.id)
        if future is None or future.done():
            logger.debug("Dropping unmatched response %s", response.id)
            return
        if response.error is not None:
            future.set_exception(RemoteCallError(response.error))
        else:
            future.set_result(response.returned)


class Server:
    """Answers requests arriving on *terminal* by calling *func*."""

    def __init__(
        self,
        terminal: Terminal[Response, Request],
        func: Callable[..., Any],
    ) -> None:
        self._terminal = terminal
        self._func = func
        self._tasks: set[asyncio.Task[None]] = set()
        terminal.add_listener(self._on_request)

    def _on_request(self, request: Request) -> None:
        task = asyncio.get_running_loop().create_task(self._handle(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, request: Request) -> None:
        try:
            returned = self._func(*request.args)
            if inspect.isawaitable(returned):
                returned = await returned
        except Exception as exc:
            logger.warning("Request %s failed: %s", request.id, exc)
            self._terminal.post(Response(id=request.id, error=f"{type(exc).__name__}: {exc}"))
        else:
            self._terminal.post(Response(id=request.id, returned=returned))


class CallableClient:
    """Request client that calls *func* directly in this process."""

    def __init__(self, func: Callable[..., Any | Awaitable[Any]]) -> None:
        self._func = func

    async def request(self, *args: Any) -> Any:
        returned = self._func(*args)
        if inspect.isawaitable(returned):
            returned = await returned
        return returned


class DetachedClient:
    """Request client for processes that manage the backlog without firing it."""

    async def request(self, *args: Any) -> Any:
        msg = "No request client attached; use 'deferq run' to fire executions"
        raise RemoteCallError(msg)

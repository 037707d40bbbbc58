import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Protocol, Set, Tuple

from sharedcache.config import get_settings
from sharedcache.exceptions import CacheRejectedError, CacheTimeoutError, ConnectionClosedError, ProtocolError
from sharedcache.models.entry import Status

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], None]
RemoteCall = Callable[[Optional[Dict[str, Any]]], None]


class Transport(Protocol):
    def open(self, on_message: MessageHandler) -> None: ...

    def send(self, data: Dict[str, Any]) -> None: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class Deferred:
    """Wraps a computation still in flight so set() stores it as PENDING until it settles."""

    awaitable: Awaitable[Any]


def _set_result(future: asyncio.Future, value: Any) -> None:
    if not future.done():
        future.set_result(value)


def _set_exception(future: asyncio.Future, exc: BaseException) -> None:
    if not future.done():
        future.set_exception(exc)


class SharedCache:
    """
    Client view of one named cache held by a Coordinator.

    Every call is a request/response exchange over the transport, matched up
    by a fresh call id.
    """

    def __init__(
        self,
        transport: Transport,
        name: Optional[str] = None,
        timeout: Optional[float] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        settings = get_settings()
        self._transport = transport
        self._cache_name = name or settings.default_cache_name
        # Seconds a get() waits for a pending value to settle.
        self._timeout = timeout if timeout is not None else settings.default_timeout_ms / 1000
        self._on_error = on_error or self._log_error
        self._pending_calls: Dict[str, Tuple[asyncio.Future, Callable[[Any], None]]] = {}
        self._settling: Set[asyncio.Task] = set()
        self._closed = False
        transport.open(self._on_message)

    @staticmethod
    def _log_error(error: str) -> None:
        logger.error(f"Coordinator reported an error: {error}")

    def _on_message(self, data: Dict[str, Any]) -> None:
        error = data.get("error")
        if error:
            self._on_error(error)

        call = self._pending_calls.pop(data.get("callId"), None)
        if call is None:
            return
        future, on_message = call
        if error:
            _set_exception(future, ProtocolError(error))
        else:
            on_message(data.get("message"))

    def _remote_call(self, fn: str, future: asyncio.Future, on_message: Callable[[Any], None]) -> RemoteCall:
        """
        Registers on_message for a new call id and returns a function that
        sends requests under that id. All messages of one set() share it.
        """
        if self._closed:
            raise ConnectionClosedError(f"SharedCache '{self._cache_name}' is closed")
        call_id = str(uuid.uuid4())
        self._pending_calls[call_id] = (future, on_message)

        def send(args: Optional[Dict[str, Any]] = None) -> None:
            self._transport.send({
                "callId": call_id,
                "cacheName": self._cache_name,
                "fn": fn,
                "args": args or {},
            })

        return send

    async def has(self, key: Hashable) -> bool:
        future = asyncio.get_running_loop().create_future()
        self._remote_call("has", future, lambda message: _set_result(future, message))({"key": key})
        return await future

    async def get(self, key: Hashable, timeout: Optional[float] = None) -> Any:
        """
        Returns the value under key. If a computation for it is in flight,
        waits up to timeout seconds for it to settle.

        Raises CacheTimeoutError if it does not settle in time, and the
        original reason if the computation was rejected.
        """
        timeout = self._timeout if timeout is None else timeout
        future = asyncio.get_running_loop().create_future()

        def on_message(message: Dict[str, Any]) -> None:
            # Never called with PENDING: the coordinator answers once the value settles.
            value = message.get("value")
            if Status(message["status"]) is not Status.REJECTED:
                _set_result(future, value)
            elif message.get("timedOut"):
                _set_exception(future, CacheTimeoutError(value))
            elif isinstance(value, BaseException):
                _set_exception(future, value)
            else:
                _set_exception(future, CacheRejectedError(value))

        self._remote_call("get", future, on_message)({"key": key, "timeout": timeout * 1000})
        return await future

    async def set(self, key: Hashable, value: Any) -> "SharedCache":
        """
        Stores value under key. A Deferred is stored as PENDING first and
        replaced by its outcome once it settles; returns after the first write
        is acknowledged.
        """
        future = asyncio.get_running_loop().create_future()
        remote_call = self._remote_call("set", future, lambda message: _set_result(future, self))
        writer_id = str(uuid.uuid4())

        if isinstance(value, Deferred):
            remote_call({"key": key, "status": Status.PENDING, "value": None, "writerId": writer_id})
            task = asyncio.ensure_future(self._settle(remote_call, key, writer_id, value.awaitable))
            self._settling.add(task)
            task.add_done_callback(self._settling.discard)
        else:
            remote_call({"key": key, "status": Status.SYNC, "value": value, "writerId": writer_id})

        return await future

    async def _settle(self, remote_call: RemoteCall, key: Hashable, writer_id: str, awaitable: Awaitable[Any]) -> None:
        try:
            result = await awaitable
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # A failed computation is cached as data, not raised here.
            remote_call({"key": key, "status": Status.REJECTED, "value": e, "writerId": writer_id})
        else:
            remote_call({"key": key, "status": Status.FULFILLED, "value": result, "writerId": writer_id})

    async def delete(self, key: Hashable) -> None:
        future = asyncio.get_running_loop().create_future()
        self._remote_call("delete", future, lambda message: _set_result(future, message))({"key": key})
        await future

    async def clear(self) -> None:
        future = asyncio.get_running_loop().create_future()
        self._remote_call("clear", future, lambda message: _set_result(future, message))()
        await future

    async def close(self) -> None:
        """
        Releases this client's cache references at the coordinator.

        Computations still in flight get up to the client timeout to settle
        first. Any that take longer are abandoned and their keys stay PENDING
        until deleted.
        """
        if self._closed:
            return
        self._closed = True
        if self._settling:
            _, unsettled = await asyncio.wait(set(self._settling), timeout=self._timeout)
            if unsettled:
                logger.warning(f"Closing SharedCache '{self._cache_name}' with {len(unsettled)} unsettled values")
        self._transport.send({"fn": "disconnect"})
        self._transport.close()
        calls, self._pending_calls = self._pending_calls, {}
        for future, _ in calls.values():
            _set_exception(future, ConnectionClosedError(f"SharedCache '{self._cache_name}' was closed"))

    async def __aenter__(self) -> "SharedCache":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

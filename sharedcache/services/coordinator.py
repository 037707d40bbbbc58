import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, List, Optional, Protocol, Set, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from sharedcache.config import Settings, get_settings
from sharedcache.data.path_container import PathContainer
from sharedcache.data.store import CacheStore
from sharedcache.exceptions import (
    CacheNotFoundError,
    InvalidRequestError,
    MissingOperationError,
    ProtocolError,
    UnknownOperationError,
)
from sharedcache.models import CacheRequest, CacheSummary, Entry, GetArgs, GetResult, KeyArgs, SetArgs, Status

logger = logging.getLogger(__name__)

ArgsModel = TypeVar("ArgsModel", bound=BaseModel)

_sequence = itertools.count()


class Port(Protocol):
    """One client connection as seen by the coordinator."""

    def post_message(self, data: Dict[str, Any]) -> None: ...

    def close(self) -> None: ...


@dataclass(eq=False)
class Waiter:
    """A get() parked on a PENDING entry until its writer settles or the deadline passes."""

    port: Port
    call_id: Any
    path: Tuple[Hashable, Hashable]
    deadline: float
    timer: Optional[asyncio.TimerHandle] = None
    done: bool = False
    seq: int = field(default_factory=lambda: next(_sequence))

    def resolve(self, result: GetResult) -> None:
        if self.done:
            return
        self.cancel()
        self.port.post_message({"callId": self.call_id, "message": result.to_message()})

    def cancel(self) -> None:
        self.done = True
        if self.timer is not None:
            self.timer.cancel()


class Coordinator:
    """
    Sole owner of every named cache shared by the connected clients.

    Requests are handled one at a time to completion, so the ownership check
    in set() and the write that follows it can never interleave with another
    request. Reads of a PENDING entry are parked as waiters under
    (key, writer id) and released when that writer settles the entry or when
    their own deadline passes.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._caches: Dict[str, CacheStore] = {}
        # cache name -> ports referencing it
        self._references: Dict[str, Set[Port]] = {}
        # port -> cache names it referenced
        self._ports: Dict[Port, Set[str]] = {}
        self._waiters = PathContainer(length=2)
        self._port_waiters: Dict[Port, Set[Waiter]] = {}
        self._operations: Dict[str, Callable[[Port, CacheRequest], None]] = {
            "has": self._has,
            "get": self._get,
            "set": self._set,
            "delete": self._delete,
            "clear": self._clear,
            "disconnect": self._disconnect,
        }

    # Connections

    def connect(self, port: Port) -> None:
        if port in self._ports:
            return
        self._ports[port] = set()
        logger.info(f"Client connected ({len(self._ports)} open connections)")

    def disconnect(self, port: Port) -> None:
        """
        Releases every cache the port referenced and closes it.
        Caches left without references are destroyed; the port's own
        outstanding reads are dropped. Other clients are not affected.
        """
        names = self._ports.pop(port, None)
        if names is None:
            return

        for waiter in self._port_waiters.pop(port, set()):
            waiter.cancel()
            self._waiters.delete(waiter.path, waiter)

        for name in names:
            ports = self._references.get(name)
            if ports is None:
                continue
            ports.discard(port)
            if not ports:
                del self._references[name]
                self._caches.pop(name, None)
                logger.info(f"Cache '{name}' destroyed, no connections reference it")

        port.close()
        logger.info(f"Client disconnected ({len(self._ports)} open connections)")

    def broadcast_error(self, error: str) -> None:
        """Sends an error that is not tied to a single request to every connection."""
        for port in list(self._ports):
            port.post_message({"error": error})

    def shutdown(self) -> None:
        for port in list(self._ports):
            self.disconnect(port)

    # Introspection

    def summary(self) -> List[CacheSummary]:
        return [self.describe(name) for name in sorted(self._caches)]

    def describe(self, name: str) -> CacheSummary:
        store = self._caches.get(name)
        if store is None:
            raise CacheNotFoundError(name)
        return CacheSummary(
            name=name,
            size=len(store),
            references=len(self._references.get(name, ())),
        )

    # Dispatch

    def handle_message(self, port: Port, data: Any) -> None:
        """
        Processes one request from port to completion. Failures are reported
        back to that port only and never propagate to the caller.
        """
        self.connect(port)
        try:
            request = self._parse(data)
            self._operations[request.fn](port, request)
        except (MissingOperationError, UnknownOperationError) as e:
            logger.warning(str(e))
            port.post_message({"error": str(e)})
        except ProtocolError as e:
            logger.warning(str(e))
            self._post_error(port, data, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error while handling request: {e}")
            self._post_error(port, data, f"SharedCache: {type(e).__name__}: {e}")

    @staticmethod
    def _post_error(port: Port, data: Any, error: str) -> None:
        """Reports error to port, tagged with the request's call id when it has one."""
        message: Dict[str, Any] = {"error": error}
        if isinstance(data, dict) and data.get("callId") is not None:
            message["callId"] = data["callId"]
        port.post_message(message)

    def _parse(self, data: Any) -> CacheRequest:
        if not isinstance(data, dict):
            raise InvalidRequestError("message must be an object")
        try:
            request = CacheRequest.model_validate(data)
        except ValidationError as e:
            raise InvalidRequestError(str(e)) from e
        if not request.fn:
            raise MissingOperationError()
        if request.fn not in self._operations:
            raise UnknownOperationError(request.fn)
        return request

    def _args(self, model: Type[ArgsModel], request: CacheRequest) -> ArgsModel:
        try:
            args = model.model_validate(request.args)
        except ValidationError as e:
            raise InvalidRequestError(f"bad arguments for '{request.fn}': {e}") from e
        if isinstance(args, KeyArgs):
            try:
                hash(args.key)
            except TypeError as e:
                raise InvalidRequestError(f"key {args.key!r} is not hashable") from e
        return args

    def _store(self, port: Port, request: CacheRequest) -> CacheStore:
        """Returns the cache addressed by request, creating it and recording port's reference."""
        name = request.cache_name
        if name is None:
            raise InvalidRequestError("the name of the cache has not been provided")
        store = self._caches.get(name)
        if store is None:
            store = self._caches[name] = CacheStore(name)
            logger.info(f"Cache '{name}' created")
        self._references.setdefault(name, set()).add(port)
        self._ports[port].add(name)
        return store

    # Operations

    def _has(self, port: Port, request: CacheRequest) -> None:
        args = self._args(KeyArgs, request)
        store = self._store(port, request)
        port.post_message({"callId": request.call_id, "message": store.has(args.key)})

    def _get(self, port: Port, request: CacheRequest) -> None:
        args = self._args(GetArgs, request)
        store = self._store(port, request)
        entry = store.get(args.key) or Entry()

        if entry.status is not Status.PENDING:
            result = GetResult(status=entry.status, value=entry.value)
            port.post_message({"callId": request.call_id, "message": result.to_message()})
            return

        timeout_ms = args.timeout if args.timeout is not None else self.settings.default_timeout_ms
        self._park(port, request.call_id, (args.key, entry.writer_id), timeout_ms)

    def _set(self, port: Port, request: CacheRequest) -> None:
        args = self._args(SetArgs, request)
        store = self._store(port, request)
        writer_id = args.writer_id if args.writer_id is not None else request.call_id

        current = store.get(args.key)
        set_by = current.writer_id if current is not None else None
        in_flight = current is not None and current.status is Status.PENDING

        # The owner of an entry may always rewrite it. Anyone else may only
        # start a new value, and only once no computation is in flight.
        if writer_id == set_by or (args.status in (Status.PENDING, Status.SYNC) and not in_flight):
            store.set(args.key, Entry(args.value, args.status, writer_id))
        else:
            logger.debug(f"Dropping {args.status.value} write to '{store.name}' for {args.key!r}: owned by another writer")

        if args.status.is_settlement:
            self._settle((args.key, writer_id), GetResult(status=args.status, value=args.value))

        port.post_message({"callId": request.call_id})

    def _delete(self, port: Port, request: CacheRequest) -> None:
        # Parked reads for the key keep waiting on their own deadlines.
        args = self._args(KeyArgs, request)
        self._store(port, request).delete(args.key)
        port.post_message({"callId": request.call_id, "message": None})

    def _clear(self, port: Port, request: CacheRequest) -> None:
        self._store(port, request).clear()
        port.post_message({"callId": request.call_id, "message": None})

    def _disconnect(self, port: Port, request: CacheRequest) -> None:
        self.disconnect(port)

    # Waiters

    def _park(self, port: Port, call_id: Any, path: Tuple[Hashable, Hashable], timeout_ms: float) -> None:
        loop = asyncio.get_running_loop()
        delay = max(timeout_ms, 0) / 1000
        waiter = Waiter(port=port, call_id=call_id, path=path, deadline=loop.time() + delay)
        self._waiters.add(path, waiter)
        self._port_waiters.setdefault(port, set()).add(waiter)
        waiter.timer = loop.call_later(delay, self._expire, waiter)

    def _expire(self, waiter: Waiter) -> None:
        if waiter.done:
            return
        # Only this waiter goes; others on the same path keep their own deadlines.
        self._waiters.delete(waiter.path, waiter)
        self._forget(waiter)
        logger.debug(f"Read of {waiter.path[0]!r} timed out waiting for writer {waiter.path[1]!r}")
        waiter.resolve(GetResult(status=Status.REJECTED, value=self.settings.timeout_reason, timed_out=True))

    def _settle(self, path: Tuple[Hashable, Hashable], result: GetResult) -> None:
        if not self._waiters.has(path):
            return
        waiters = sorted(self._waiters.get(path), key=lambda w: w.seq)
        self._waiters.clear(path)
        for waiter in waiters:
            self._forget(waiter)
            waiter.resolve(result)

    def _forget(self, waiter: Waiter) -> None:
        waiters = self._port_waiters.get(waiter.port)
        if waiters is None:
            return
        waiters.discard(waiter)
        if not waiters:
            del self._port_waiters[waiter.port]

import asyncio
import copy
import json
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from starlette.websockets import WebSocketDisconnect

from sharedcache.services.coordinator import Coordinator

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], None]


class LocalPort:
    """Coordinator-side end of an in-process connection."""

    def __init__(self, deliver: MessageHandler):
        self._deliver = deliver
        self.closed = False

    def post_message(self, data: Dict[str, Any]) -> None:
        if self.closed:
            return
        # call_soon keeps per-connection FIFO and never re-enters the client synchronously.
        asyncio.get_running_loop().call_soon(self._deliver, copy.deepcopy(data))

    def close(self) -> None:
        self.closed = True


class LocalTransport:
    """
    Client-side end of an in-process connection to a Coordinator running
    on the same event loop.
    """

    def __init__(self, coordinator: Coordinator):
        self._coordinator = coordinator
        self._port: Optional[LocalPort] = None

    def open(self, on_message: MessageHandler) -> None:
        self._port = LocalPort(on_message)
        self._coordinator.connect(self._port)

    def send(self, data: Dict[str, Any]) -> None:
        if self._port is None or self._port.closed:
            logger.warning(f"Dropping '{data.get('fn')}' call sent over a closed connection")
            return
        # Both directions copy, so neither side can reach the other's objects.
        asyncio.get_running_loop().call_soon(self._coordinator.handle_message, self._port, copy.deepcopy(data))

    def close(self) -> None:
        if self._port is not None:
            self._port.close()


class WebSocketPort:
    """
    Coordinator-side port over a WebSocket. Outgoing messages are queued and
    written as JSON text frames by pump(), in the order they were posted.
    """

    def __init__(self, websocket: WebSocket):
        self._websocket = websocket
        self._outbox: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        self.closed = False

    def post_message(self, data: Dict[str, Any]) -> None:
        if not self.closed:
            self._outbox.put_nowait(data)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._outbox.put_nowait(None)

    async def pump(self) -> None:
        while True:
            data = await self._outbox.get()
            if data is None:
                return
            try:
                await self._websocket.send_text(json.dumps(jsonable_encoder(data)))
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.info(f"Stopped sending to closed WebSocket: {e}")
                return

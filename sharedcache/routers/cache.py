import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, Depends, Request, WebSocket
from starlette.websockets import WebSocketDisconnect

from sharedcache.exceptions import InvalidRequestError
from sharedcache.models.cache import CacheSummary
from sharedcache.services.coordinator import Coordinator
from sharedcache.services.transport import WebSocketPort


router: APIRouter = APIRouter()
logger = logging.getLogger(__name__)


def get_coordinator(request: Request) -> Coordinator:
    return request.app.state.coordinator


def get_socket_coordinator(websocket: WebSocket) -> Coordinator:
    return websocket.app.state.coordinator


@router.get("/caches", response_model=List[CacheSummary])
async def get_caches(coordinator: Coordinator = Depends(get_coordinator)):
    """
    Returns every live cache with its entry count and number of connected clients.
    """
    return coordinator.summary()


@router.get("/caches/{name}", response_model=CacheSummary)
async def get_cache(name: str, coordinator: Coordinator = Depends(get_coordinator)):
    """
    Returns the summary of a single cache.
    """
    return coordinator.describe(name)


@router.websocket("/ws")
async def cache_socket(websocket: WebSocket, coordinator: Coordinator = Depends(get_socket_coordinator)):
    """
    One coordinator connection per socket. Each text frame carries a JSON
    request envelope; responses and errors are sent back as JSON text frames.
    """
    await websocket.accept()
    port = WebSocketPort(websocket)
    coordinator.connect(port)
    sender = asyncio.create_task(port.pump())

    client_gone = False
    try:
        while not port.closed:
            text = await websocket.receive_text()
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                error = InvalidRequestError(f"message is not valid JSON ({e.msg})")
                logger.warning(str(error))
                port.post_message({"error": str(error)})
                continue
            coordinator.handle_message(port, data)
    except WebSocketDisconnect:
        client_gone = True
        logger.info("WebSocket closed by client")
    finally:
        coordinator.disconnect(port)
        await sender

    # A "disconnect" request ends the loop with the socket still open.
    if not client_gone:
        await websocket.close()

import logging
from contextlib import asynccontextmanager
import asyncio

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse
from starlette.status import HTTP_404_NOT_FOUND

from sharedcache.config import get_settings
from sharedcache.exceptions import CacheNotFoundError
from sharedcache.models.error import Error
from sharedcache.routers import cache
from sharedcache.services.coordinator import Coordinator

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()

    def on_loop_error(loop, context):
        # Errors outside any single request go to every connected client.
        logger.error(f"Unhandled coordinator error: {context.get('message')}")
        app.state.coordinator.broadcast_error(str(context.get("exception") or context.get("message")))
        loop.default_exception_handler(context)

    logger.info("Starting coordinator...")
    loop.set_exception_handler(on_loop_error)
    try:
        yield
    finally:
        logger.info("Shutting down coordinator...")
        app.state.coordinator.shutdown()
        loop.set_exception_handler(previous_handler)

app = FastAPI(lifespan=lifespan)
app.state.coordinator = Coordinator(settings)

@app.exception_handler(CacheNotFoundError)
async def cache_not_found_handler(request: Request, exc: CacheNotFoundError):
    error = Error(name=type(exc).__name__, description=str(exc))
    return JSONResponse(status_code=HTTP_404_NOT_FOUND, content=error.model_dump())

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    error = Error(name=type(exc).__name__, description=str(exc))
    return JSONResponse(status_code=500, content=error.model_dump())

@app.get("/")
async def read_root() -> dict[str, str]:
    return {"message": "Shared cache coordinator. Connect to /ws."}


app.include_router(cache.router, tags=["cache"])

"""
Server entry point: FastAPI app setup and route configuration.
Wires the JSON store, extension inventory, alert engine and message
router together and exposes the message protocol plus browser watch
sessions over HTTP.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import json
from collections.abc import AsyncGenerator

import dotenv
import fastapi
import uvicorn
from fastapi.middleware import cors
from starlette import responses

from pagewatch import config
from pagewatch.browser.session import WatchSession
from pagewatch.engine.alert_engine import AlertMergeEngine
from pagewatch.engine.badge import BadgeCounters
from pagewatch.models.watch import WatchRequest, WatchStatus
from pagewatch.routes.messages import MessageRouter
from pagewatch.store.inventory import Inventory
from pagewatch.store.kv import JsonFileStore
from pagewatch.utils import logger

dotenv.load_dotenv()

log = logger.create_logger("Server")

server_settings = config.ServerSettings()


@contextlib.asynccontextmanager
async def lifespan(app: fastapi.FastAPI) -> AsyncGenerator[None]:
    """Build the engine from settings, hydrate counters, stop watches on exit."""
    engine_settings = config.EngineSettings()
    store = JsonFileStore(engine_settings.data_file)
    counters = BadgeCounters()
    inventory = Inventory(store, counters)
    engine = AlertMergeEngine(store, inventory, counters, engine_settings)
    await inventory.hydrate()
    await engine.hydrate()

    app.state.router = MessageRouter(engine, inventory, counters)
    app.state.watches = {}

    log.section("PageWatch Server Started")
    log.info("Environment", {
        "env": "production" if server_settings.is_production else "development",
        "dataFile": str(store.path),
    })
    yield

    tasks = [task for _, task in app.state.watches.values() if not task.done()]
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    log.info("Server stopped", {"cancelledWatches": len(tasks)})


app = fastapi.FastAPI(title="PageWatch Server", lifespan=lifespan)

# ============================================================================
# Middleware
# ============================================================================

app.add_middleware(
    cors.CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# Message Protocol
# ============================================================================


def _error(message: str, status_code: int) -> responses.JSONResponse:
    return responses.JSONResponse({"ok": False, "error": message}, status_code=status_code)


@app.post("/api/messages")
async def messages_endpoint(request: fastapi.Request) -> responses.JSONResponse:
    """Answer one protocol message."""
    try:
        message = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error("Invalid JSON body", 400)

    result = await request.app.state.router.handle(message)
    if result is None:
        return _error("Unknown message type", 400)
    return responses.JSONResponse(result)


@app.get("/api/health")
async def health_endpoint() -> dict[str, str]:
    return {"status": "ok"}


# ============================================================================
# Watch Sessions
# ============================================================================


def _forget_when_done(watches: dict, session_id: str, task: asyncio.Task) -> None:
    """Drop a finished session from the listing after the retention period."""

    def forget() -> None:
        entry = watches.get(session_id)
        if entry is not None and entry[1] is task:
            del watches[session_id]
            log.debug("Watch session forgotten", {"id": session_id})

    asyncio.get_running_loop().call_later(server_settings.watch_retention_seconds, forget)


@app.post("/api/watch", status_code=202)
async def start_watch_endpoint(body: WatchRequest, request: fastapi.Request) -> WatchStatus:
    """Start watching a URL in a background browser session."""
    router: MessageRouter = request.app.state.router
    session = WatchSession(
        body.url,
        sender=router,
        headless=body.headless,
        extension_paths=body.extension_paths,
    )
    task = asyncio.create_task(session.run(body.duration_seconds))
    request.app.state.watches[session.id] = (session, task)
    task.add_done_callback(functools.partial(_forget_when_done, request.app.state.watches, session.id))
    log.info("Watch session started", {"id": session.id, "url": body.url, "seconds": body.duration_seconds})
    return session.snapshot()


@app.get("/api/watch")
async def list_watch_endpoint(request: fastapi.Request) -> list[WatchStatus]:
    return [session.snapshot() for session, _ in request.app.state.watches.values()]


@app.get("/api/watch/{session_id}/log")
async def watch_log_endpoint(session_id: str, request: fastapi.Request) -> dict[str, list[str]]:
    """Debug log lines captured by one watch session."""
    entry = request.app.state.watches.get(session_id)
    if entry is None:
        raise fastapi.HTTPException(status_code=404, detail="Unknown watch session")
    session, _ = entry
    return {"lines": session.log_lines}


@app.delete("/api/watch/{session_id}")
async def stop_watch_endpoint(session_id: str, request: fastapi.Request) -> WatchStatus:
    """Stop a watch session and forget it."""
    entry = request.app.state.watches.pop(session_id, None)
    if entry is None:
        raise fastapi.HTTPException(status_code=404, detail="Unknown watch session")
    session, task = entry
    if not task.done():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
    log.info("Watch session stopped", {"id": session_id})
    return session.snapshot()


def main() -> None:
    log.success(f"Server listening on {server_settings.host}:{server_settings.port}")
    uvicorn.run(
        "pagewatch.main:app",
        host=server_settings.host,
        port=server_settings.port,
        reload=not server_settings.is_production,
    )


if __name__ == "__main__":
    main()

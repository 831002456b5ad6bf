import logging
from contextlib import asynccontextmanager
from functools import partial
from importlib import resources
from typing import Optional

import anyio
import uvicorn
from fastapi import APIRouter, Cookie, Depends, FastAPI, Header, HTTPException, Request, Response, WebSocket, status
from fastapi.responses import HTMLResponse
from starlette.requests import ClientDisconnect, HTTPConnection
from starlette.websockets import WebSocketState

from models import Broadcaster, Listener, ListenerRegistry
from schemas import HealthResponse, WebhookAccepted
from utilities import COOKIE_NAME, Settings, bearer_matches, configure_logging, now_ts, parse_session_cookie

logger = logging.getLogger(__name__)

INDEX_HTML = resources.files("utilities").joinpath("static/index.html").read_bytes()

router = APIRouter()

# -------------- Dependencies --------------
def get_settings(conn: HTTPConnection) -> Settings:
    return conn.app.state.settings

def get_registry(conn: HTTPConnection) -> ListenerRegistry:
    return conn.app.state.registry

def get_broadcaster(conn: HTTPConnection) -> Broadcaster:
    return conn.app.state.broadcaster

def resolve_listener(registry: ListenerRegistry, cookie: Optional[str]) -> Listener:
    idx = parse_session_cookie(cookie)
    if idx is None:
        logger.warning("Unauthorized: missing or malformed %s cookie", COOKIE_NAME)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="session cookie required")
    listener = registry.get_listener(idx)
    if listener is None:
        logger.warning("No listener for idx=%d", idx)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="unknown session")
    return listener

# -------------- Entry page --------------
@router.get("/", response_class=HTMLResponse)
async def serve_index(
    idx: Optional[str] = Cookie(default=None),
    registry: ListenerRegistry = Depends(get_registry),
):
    logger.info("Serving the index")
    response = HTMLResponse(INDEX_HTML)

    session = parse_session_cookie(idx)
    if session is not None and registry.get_listener(session) is not None:
        logger.debug("Reusing listener idx=%d", session)
        return response

    listener = registry.add_listener()
    logger.info("Setting cookie idx=%d", listener.idx)
    response.set_cookie(COOKIE_NAME, str(listener.idx), httponly=False)
    return response

# -------------- Webhook receiver --------------
@router.post("/webhook", response_model=WebhookAccepted)
async def webhook_receiver(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    logger.info("Received a webhook")
    if settings.bearer and not bearer_matches(authorization, settings.bearer):
        logger.debug("Received a request without a valid bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        body = await request.body()
    except ClientDisconnect:
        logger.error("Failed to read the body: client disconnected")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to read the body")

    # subscribers are not waited on; no subscriber means the message is dropped
    await broadcaster.publish(body.decode("utf-8", errors="replace"))
    return WebhookAccepted()

# -------------- Log stream --------------
async def pump_listener(websocket: WebSocket, listener: Listener):
    """Send every queued message as one text frame until closed or a send fails."""
    while True:
        message = await listener.queue.get()
        if message is None:
            logger.debug("Listener idx=%d closed", listener.idx)
            return
        try:
            await websocket.send_text(message)
        except Exception as exc:
            # (broken pipe / closed) -> stop
            logger.error("Failed to push the message idx=%d: %s", listener.idx, exc)
            return

async def wait_disconnect(websocket: WebSocket):
    # client frames are ignored; only the disconnect matters
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return

async def relay(websocket: WebSocket, listener: Listener):
    """Run the sender and the disconnect watcher until either one finishes."""
    async with anyio.create_task_group() as task_group:

        async def run_until_done(func):
            await func()
            task_group.cancel_scope.cancel()

        task_group.start_soon(run_until_done, partial(pump_listener, websocket, listener))
        await run_until_done(partial(wait_disconnect, websocket))

async def close_quietly(websocket: WebSocket):
    if websocket.client_state != WebSocketState.CONNECTED:
        return
    if websocket.application_state != WebSocketState.CONNECTED:
        return
    try:
        await websocket.close()
    except RuntimeError as exc:
        logger.debug("Websocket already closed: %s", exc)

@router.websocket("/logs")
async def log_output(websocket: WebSocket, registry: ListenerRegistry = Depends(get_registry)):
    logger.info("Received a log output")
    try:
        listener = resolve_listener(registry, websocket.cookies.get(COOKIE_NAME))
    except HTTPException as exc:
        await websocket.send_denial_response(Response(status_code=exc.status_code))
        return

    await websocket.accept()
    try:
        await relay(websocket, listener)
    finally:
        # the only cleanup path for a streaming session
        registry.remove_listener(listener.idx)
        await close_quietly(websocket)

@router.get("/logs")
async def log_output_without_upgrade(
    idx: Optional[str] = Cookie(default=None),
    registry: ListenerRegistry = Depends(get_registry),
):
    resolve_listener(registry, idx)
    logger.debug("Received a log output without a websocket upgrade")
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="websocket upgrade required")

# -------------- Health --------------
@router.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    registry: ListenerRegistry = Depends(get_registry),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    uptime_sec = int((now_ts() - request.app.state.started_at).total_seconds())
    return HealthResponse(
        uptime_sec=uptime_sec,
        listeners=len(registry),
        published=broadcaster.published,
        delivered=broadcaster.delivered,
    )

# -------------- App --------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting the server")
    logger.debug("Debug logging enabled")
    app.state.broadcaster.start()
    try:
        yield
    finally:
        # end open streams before the worker
        app.state.registry.close_all()
        await app.state.broadcaster.stop()
        logger.info("Server shut down")

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="Webhook Logger", lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = ListenerRegistry(settings.subscriber_queue_size)
    app.state.broadcaster = Broadcaster(app.state.registry, settings.inbound_queue_size)
    app.state.started_at = now_ts()
    app.include_router(router)
    return app

app = create_app()

def run():
    settings = Settings(_cli_parse_args=True)
    configure_logging(settings.debug)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )

if __name__ == "__main__":
    run()

"""FastAPI application for the command relay.

HTTP and WebSocket traffic share one listener:

    GET  /health    -> {"status": "ok", "clients": 2}
    POST /command   <- raw body, broadcast verbatim -> 204 No Content
    WS   /<any>     <- upgrade; the server only sends

Requests to unknown paths get 404; a known path with the wrong method
(e.g. ``GET /command``) gets 405.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request, Response, WebSocket
from pydantic import BaseModel
from starlette.types import ASGIApp, Receive, Scope, Send

from cmdrelay import __version__
from cmdrelay.config.settings import RelaySettings
from cmdrelay.relay.connection import Connection
from cmdrelay.relay.registry import BroadcastRegistry

logger = logging.getLogger(__name__)

COMMAND_PATH = "/command"


class HealthResponse(BaseModel):
    status: str = "ok"
    clients: int = 0


class RequestLogMiddleware:
    """Logs method and path of every plain HTTP request at debug level."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            target = scope["path"]
            if scope.get("query_string"):
                target = f"{target}?{scope['query_string'].decode('latin-1')}"
            logger.debug("Received request: %s %s", scope["method"], target)
        await self.app(scope, receive, send)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: RelaySettings | None = None,
    registry: BroadcastRegistry | None = None,
) -> FastAPI:
    """Create the relay application.

    Args:
        settings: Relay settings. Defaults to ``RelaySettings()``.
        registry: Optional pre-built registry (for testing).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.debug("Relay application started")
        yield
        r: BroadcastRegistry = app.state.registry
        logger.debug(
            "Relay application stopping (%d connection(s) active, %d send(s) pending)",
            r.count, r.pending_sends,
        )
        await r.close_all()

    app = FastAPI(
        title="cmdrelay",
        description="Broadcasts HTTP command payloads to connected WebSocket clients",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings if settings is not None else RelaySettings()
    app.state.registry = registry if registry is not None else BroadcastRegistry()
    app.add_middleware(RequestLogMiddleware)

    @app.get("/health")
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", clients=app.state.registry.count)

    @app.post(COMMAND_PATH, status_code=204, response_class=Response)
    async def handle_command(request: Request) -> Response:
        r: BroadcastRegistry = app.state.registry
        chunks: list[bytes] = []
        async for chunk in request.stream():
            if chunk:
                chunks.append(chunk)
        payload = b"".join(chunks)

        logger.debug(
            "Broadcasting command to %d client(s): %s",
            r.count, payload.decode("utf-8", errors="replace"),
        )
        result = await r.broadcast(payload)
        logger.debug(
            "Broadcast dispatched to %d client(s) (%d skipped, %d failed)",
            result.dispatched, result.skipped, result.failed,
        )
        return Response(status_code=204)

    @app.websocket("/{path:path}")
    async def relay_socket(websocket: WebSocket) -> None:
        r: BroadcastRegistry = app.state.registry
        connection = Connection(websocket)
        try:
            await connection.accept()
        except Exception as e:
            logger.error("WebSocket server error: %s", e)
            return

        try:
            r.register(connection)
            await connection.run_until_closed()
        except Exception as e:
            logger.debug("Connection %s ended with error: %s", connection.id, e)
        finally:
            r.unregister(connection)

    return app


# ---------------------------------------------------------------------------
# Serving
# ---------------------------------------------------------------------------

class RelayServer(uvicorn.Server):
    """uvicorn server that logs once the listener is bound."""

    async def startup(self, sockets: list | None = None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            logger.info("HTTP/WebSocket relay server running on port %d", self.config.port)


def serve(settings: RelaySettings, app: FastAPI | None = None) -> None:
    """Run the relay until interrupted.

    Exits the process with status 1 if the listener cannot be bound.
    """
    if app is None:
        app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
        log_level=settings.logging.level.to_logging_level(),
    )
    server = RelayServer(config)
    try:
        server.run()
    except SystemExit:
        logger.error(
            "HTTP server error: cannot listen on %s:%d", settings.server.host, settings.server.port
        )
        raise
    if not server.started:
        logger.error("HTTP server error: relay did not start")
        sys.exit(1)

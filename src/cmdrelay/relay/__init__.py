"""Command relay core for cmdrelay.

Tracks live WebSocket connections and broadcasts HTTP command payloads
to them over a single listener.

Public API:
    Connection -- One accepted WebSocket session
    BroadcastRegistry -- Live connection set and broadcast fanout
    create_app -- FastAPI application factory
"""

from cmdrelay.relay.connection import (
    Connection,
    ConnectionClosedError,
    ConnectionState,
    RelayError,
)
from cmdrelay.relay.registry import BroadcastRegistry, BroadcastResult

__all__ = [
    "BroadcastRegistry",
    "BroadcastResult",
    "Connection",
    "ConnectionClosedError",
    "ConnectionState",
    "RelayError",
    "create_app",
    "serve",
]


def __getattr__(name: str) -> object:
    """Lazy import for the server module, which pulls in uvicorn."""
    if name == "create_app":
        from cmdrelay.relay.server import create_app
        return create_app
    if name == "serve":
        from cmdrelay.relay.server import serve
        return serve
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

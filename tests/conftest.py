"""Shared test fixtures for the cmdrelay test suite.

Provides a fake WebSocket transport that records sent frames, and
factories for connections and registries built on top of it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import pytest
from fastapi.websockets import WebSocketState

from cmdrelay.relay.connection import Connection
from cmdrelay.relay.registry import BroadcastRegistry


class FakeWebSocket:
    """Stands in for a Starlette WebSocket.

    Frames sent by the server are collected in ``sent``. Inbound ASGI
    messages are served from ``inbound``; once it is empty, receive()
    reports a disconnect. When ``stall`` is given, every send waits for
    that event before completing, like a peer that stopped reading.
    """

    def __init__(
        self,
        broken: bool = False,
        fail_accept: bool = False,
        stall: asyncio.Event | None = None,
    ) -> None:
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.broken = broken
        self.fail_accept = fail_accept
        self.stall = stall
        self.sent: list[str | bytes] = []
        self.inbound: list[dict[str, Any]] = []
        self.close_code: int | None = None

    async def accept(self) -> None:
        if self.fail_accept:
            raise RuntimeError("handshake failed")
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, data: str) -> None:
        if self.stall is not None:
            await self.stall.wait()
        if self.broken:
            raise RuntimeError("transport broken")
        self.sent.append(data)

    async def send_bytes(self, data: bytes) -> None:
        if self.stall is not None:
            await self.stall.wait()
        if self.broken:
            raise RuntimeError("transport broken")
        self.sent.append(data)

    async def receive(self) -> dict[str, Any]:
        if self.inbound:
            return self.inbound.pop(0)
        self.client_state = WebSocketState.DISCONNECTED
        return {"type": "websocket.disconnect", "code": 1000}

    async def close(self, code: int = 1000) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def drop(self) -> None:
        """Simulate the peer vanishing without a close handshake."""
        self.client_state = WebSocketState.DISCONNECTED


@pytest.fixture
def fake_websocket() -> Callable[..., FakeWebSocket]:
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket


@pytest.fixture
def make_connection(fake_websocket: Callable[..., FakeWebSocket]) -> Callable[..., Connection]:
    """Factory for un-accepted Connections over a FakeWebSocket."""

    def _make(**kwargs: Any) -> Connection:
        return Connection(fake_websocket(**kwargs))

    return _make


@pytest.fixture
def registry() -> BroadcastRegistry:
    """An empty registry."""
    return BroadcastRegistry()


@pytest.fixture(autouse=True)
def _reset_cmdrelay_logger() -> Any:
    """Undo handlers installed by setup_logging between tests."""
    yield
    root = logging.getLogger("cmdrelay")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)

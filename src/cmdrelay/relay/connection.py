"""WebSocket connection wrapper tracked by the broadcast registry.

A Connection owns the lifecycle bookkeeping for one accepted WebSocket
session. The ASGI server owns the socket itself; the Connection only
records whether the session is ready to receive broadcasts.

State machine::

    CONNECTING -> OPEN -> CLOSING -> CLOSED
    CONNECTING -> CLOSED   (failed handshake)
    OPEN       -> CLOSED   (peer disconnect, transport error)

CLOSED is terminal.
"""

from __future__ import annotations

import enum
import logging
import uuid

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    """Readiness of a connection to receive broadcasts."""

    CONNECTING = "connecting"  # Upgrade not yet accepted
    OPEN = "open"
    CLOSING = "closing"  # Close frame sent, waiting for the transport
    CLOSED = "closed"


class RelayError(Exception):
    """Base class for relay errors."""


class ConnectionClosedError(RelayError):
    """Raised when sending on, or registering, a connection that is not open."""

    def __init__(self, message: str, connection_id: str = "") -> None:
        super().__init__(message)
        self.connection_id = connection_id


class Connection:
    """One accepted WebSocket session.

    Usage::

        connection = Connection(websocket)
        await connection.accept()
        registry.register(connection)
        try:
            await connection.run_until_closed()
        finally:
            registry.unregister(connection)
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._id = uuid.uuid4().hex[:12]
        self._state = ConnectionState.CONNECTING

    @property
    def id(self) -> str:
        return self._id

    @property
    def state(self) -> ConnectionState:
        if self._state is not ConnectionState.CLOSED and self._transport_closed():
            self._state = ConnectionState.CLOSED
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def _transport_closed(self) -> bool:
        if self._state is ConnectionState.CONNECTING:
            return False
        return (
            self._websocket.client_state == WebSocketState.DISCONNECTED
            or self._websocket.application_state == WebSocketState.DISCONNECTED
        )

    async def accept(self) -> None:
        """Complete the upgrade handshake.

        Raises:
            RelayError: If the connection has already left CONNECTING.
        """
        if self._state is not ConnectionState.CONNECTING:
            raise RelayError(f"Connection {self._id} cannot be accepted in state {self._state.value}")
        try:
            await self._websocket.accept()
        except Exception:
            self._state = ConnectionState.CLOSED
            raise
        self._state = ConnectionState.OPEN

    async def send(self, payload: bytes) -> None:
        """Send one payload to the client.

        UTF-8 payloads go out as text frames, anything else as binary.
        A transport failure leaves the connection CLOSED.

        Raises:
            ConnectionClosedError: If the connection is not open or the
                transport fails during the send.
        """
        state = self.state
        if state is not ConnectionState.OPEN:
            raise ConnectionClosedError(
                f"Connection {self._id} is {state.value}", connection_id=self._id
            )
        try:
            try:
                text = payload.decode("utf-8")
            except UnicodeDecodeError:
                await self._websocket.send_bytes(payload)
            else:
                await self._websocket.send_text(text)
        except Exception as e:
            self._state = ConnectionState.CLOSED
            raise ConnectionClosedError(
                f"Send failed on connection {self._id}: {e}", connection_id=self._id
            ) from e

    async def run_until_closed(self) -> None:
        """Read and discard inbound messages until the peer disconnects."""
        try:
            while True:
                message = await self._websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.debug(
                        "Connection %s closed by peer (code=%s)", self._id, message.get("code")
                    )
                    break
                logger.debug("Ignoring inbound message on connection %s", self._id)
        finally:
            self._state = ConnectionState.CLOSED

    async def close(self, code: int = 1000) -> None:
        """Close the session. Safe to call more than once."""
        if self.state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSING
        try:
            await self._websocket.close(code=code)
        except Exception as e:
            logger.debug("Error closing connection %s: %s", self._id, e)
        finally:
            self._state = ConnectionState.CLOSED

    def __repr__(self) -> str:
        return f"Connection(id={self._id!r}, state={self._state.value!r})"

"""Registry of live WebSocket connections and the broadcast fanout.

The registry's set is the only shared mutable state in the relay. A lock
guards structural changes and the snapshot taken at the start of each
broadcast; it is never held across an ``await``, so sends proceed
without blocking registration.

Broadcast is fire-and-forget: each send runs as its own task, and a
peer that stops reading holds up only its own task.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from pydantic import BaseModel, ConfigDict, Field

from cmdrelay.relay.connection import Connection, ConnectionClosedError, ConnectionState

logger = logging.getLogger(__name__)


class BroadcastResult(BaseModel):
    """Outcome counts for a single broadcast."""

    model_config = ConfigDict(frozen=True)

    dispatched: int = Field(default=0, ge=0, description="Open connections a send was started for")
    skipped: int = Field(default=0, ge=0, description="Registered connections not open at send time")
    failed: int = Field(default=0, ge=0, description="Sends that failed before broadcast returned")


class BroadcastRegistry:
    """Tracks open connections and fans payloads out to them.

    A connection is a member from the moment it is registered after a
    completed handshake until it closes or a send to it fails.
    """

    def __init__(self) -> None:
        self._connections: set[Connection] = set()
        self._lock = threading.Lock()
        # Strong references to in-flight send tasks
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._connections)

    @property
    def pending_sends(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return self.count

    def __contains__(self, connection: object) -> bool:
        with self._lock:
            return connection in self._connections

    def snapshot(self) -> list[Connection]:
        """Return the current members as a list."""
        with self._lock:
            return list(self._connections)

    def register(self, connection: Connection) -> None:
        """Add an accepted connection to the live set.

        Raises:
            ConnectionClosedError: If the connection is not open. Closed
                connections are never re-registered.
        """
        state = connection.state
        if state is not ConnectionState.OPEN:
            raise ConnectionClosedError(
                f"Cannot register connection {connection.id} in state {state.value}",
                connection_id=connection.id,
            )
        with self._lock:
            self._connections.add(connection)
            count = len(self._connections)
        logger.debug("Client connected. %d connection(s) active", count)

    def unregister(self, connection: Connection) -> bool:
        """Remove a connection. Returns False if it was not a member."""
        with self._lock:
            if connection not in self._connections:
                return False
            self._connections.discard(connection)
            count = len(self._connections)
        logger.debug("Client disconnected. %d connection(s) active", count)
        return True

    async def broadcast(self, payload: bytes) -> BroadcastResult:
        """Start sending a payload to every open connection.

        Connections that are not open are skipped. Each send runs as a
        separate task; this method returns once every send has been
        started, without waiting for slow peers. A failed send removes
        that connection and never affects delivery to the others.
        """
        payload = bytes(payload)
        targets: list[Connection] = []
        stale: list[Connection] = []
        skipped = 0
        for connection in self.snapshot():
            state = connection.state
            if state is ConnectionState.OPEN:
                targets.append(connection)
                continue
            skipped += 1
            if state is ConnectionState.CLOSED:
                stale.append(connection)

        for connection in stale:
            self.unregister(connection)

        if not targets:
            return BroadcastResult(skipped=skipped)

        tasks = [self._start_send(connection, payload) for connection in targets]
        # One pass of the loop lets every send run up to its first suspension
        await asyncio.sleep(0)

        failed = 0
        for connection, task in zip(targets, tasks):
            if task.done() and not task.cancelled() and task.exception() is not None:
                failed += 1
                # The done callback may not have run yet
                self.unregister(connection)
        return BroadcastResult(dispatched=len(tasks), skipped=skipped, failed=failed)

    def _start_send(self, connection: Connection, payload: bytes) -> asyncio.Task[None]:
        task = asyncio.create_task(connection.send(payload), name=f"send-{connection.id}")
        self._pending.add(task)

        def _on_done(t: asyncio.Task[None]) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.debug("Dropping connection %s: %s", connection.id, exc)
                self.unregister(connection)

        task.add_done_callback(_on_done)
        return task

    async def close_all(self) -> None:
        """Cancel in-flight sends and close every registered connection."""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        connections = self.snapshot()
        for connection in connections:
            await connection.close(code=1001)
            self.unregister(connection)
        if connections:
            logger.debug("Closed %d connection(s) on shutdown", len(connections))

"""Connection bookkeeping for the websocket transport.

Each :class:`Connection` owns an outbox queue drained by a single writer task,
so pushing a message never suspends the caller and messages reach the socket
in exactly the order they were pushed.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Set

from .logging_config import get_logger

logger = get_logger(__name__)

_CLOSE = object()


class Connection:
    def __init__(self, connection_id: str, websocket: Any):
        self.id = connection_id
        self.websocket = websocket
        self.outbox: "asyncio.Queue[Any]" = asyncio.Queue()
        self.closed = False

    def push(self, message: dict) -> None:
        if not self.closed:
            self.outbox.put_nowait(message)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.outbox.put_nowait(_CLOSE)

    async def pump(self) -> None:
        """Write queued messages to the websocket until closed or the socket fails."""
        while True:
            message = await self.outbox.get()
            if message is _CLOSE:
                return
            try:
                await self.websocket.send_json(message)
            except Exception as exc:
                # Client went away mid-send; the receive loop will notice and clean up.
                logger.debug("Send to %s failed: %s", self.id, exc)
                self.closed = True
                return


class ConnectionHub:
    """Addressable connections and named broadcast groups (one group per room)."""

    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self.groups: Dict[str, Set[str]] = {}

    def register(self, connection_id: str, websocket: Any) -> Connection:
        connection = Connection(connection_id, websocket)
        self.connections[connection_id] = connection
        return connection

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.connections

    def join(self, connection_id: str, group: str) -> None:
        self.groups.setdefault(group, set()).add(connection_id)

    def drop(self, connection_id: str) -> Optional[Connection]:
        """Forget *connection_id* and remove it from every group."""
        for members in self.groups.values():
            members.discard(connection_id)
        return self.connections.pop(connection_id, None)

    # -------------------- Delivery -------------------- #

    def send(self, connection_id: str, message: dict) -> None:
        connection = self.connections.get(connection_id)
        if connection is not None:
            connection.push(message)

    def send_group(self, group: str, message: dict, exclude: Optional[str] = None) -> None:
        # Order across recipients is unspecified; per-recipient order is kept by the outbox.
        for connection_id in list(self.groups.get(group, ())):
            if connection_id != exclude:
                self.send(connection_id, message)


__all__ = ["Connection", "ConnectionHub"]

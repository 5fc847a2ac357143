"""Disconnect handling: drop a connection's token and DM authority everywhere."""
from __future__ import annotations

from typing import List

from .broadcaster import broadcast_patch
from .logging_config import get_logger
from .room import Room
from .schemas import DmPatch, TokenRemovePatch
from .state import ServerState

logger = get_logger(__name__)


def handle_disconnect(server: ServerState, connection_id: str) -> List[Room]:
    """Clean up after *connection_id* and return the rooms that were affected.

    The connection is removed from the hub first so it is not addressed by the
    patches emitted here. Calling this twice for the same id is a no-op.
    """
    server.hub.drop(connection_id)
    rooms = server.registry.release(connection_id)

    for room in rooms:
        if room.pop_token(connection_id) is not None:
            broadcast_patch(server.hub, room.id, connection_id, TokenRemovePatch(id=connection_id))
        if room.dm_connection_id == connection_id:
            room.clear_dm()
            logger.info("DM %s left room %s", connection_id, room.id)
            broadcast_patch(server.hub, room.id, connection_id, DmPatch(dm_id=None))

    logger.info("Connection %s cleaned up from %d room(s)", connection_id, len(rooms))
    return rooms


__all__ = ["handle_disconnect"]

"""Permission checks for DM-restricted operations."""
from __future__ import annotations

from .errors import ErrorCode, TabletopError
from .room import Room


def is_dm(room: Room, connection_id: str) -> bool:
    return room.dm_connection_id is not None and room.dm_connection_id == connection_id


def require_dm(room: Room, connection_id: str) -> None:
    """Raise ``NOT_DM`` unless *connection_id* currently holds DM authority in *room*."""
    if not is_dm(room, connection_id):
        raise TabletopError(ErrorCode.NOT_DM)


__all__ = ["is_dm", "require_dm"]

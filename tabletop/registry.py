"""Owned collection of live rooms.

A :class:`RoomRegistry` is created per application instance (see
``tabletop.state``). Besides rooms keyed by code it keeps a secondary index
from connection id to the room codes that connection touched, so disconnect
cleanup does not need to scan every room.
"""
from __future__ import annotations

import secrets
from typing import Callable, Dict, List, Optional

from .constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from .errors import ErrorCode, TabletopError
from .logging_config import get_logger
from .room import Room

logger = get_logger(__name__)


def generate_room_code() -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_code(code: object) -> str:
    return str(code or "").strip().upper()


class RoomRegistry:
    def __init__(
        self,
        dm_secret_hash: Optional[str] = None,
        code_factory: Callable[[], str] = generate_room_code,
    ):
        self._rooms: Dict[str, Room] = {}
        # connection id -> room codes (dict used as an insertion-ordered set)
        self._memberships: Dict[str, Dict[str, None]] = {}
        self._dm_secret_hash = dm_secret_hash
        self._code_factory = code_factory

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: object) -> bool:
        return normalize_code(code) in self._rooms

    # -------------------- Rooms -------------------- #

    def create(self) -> str:
        """Create an empty room under a fresh code and return the code."""
        code = self._code_factory()
        while code in self._rooms:
            logger.debug("Room code collision on %s, retrying", code)
            code = self._code_factory()
        self._rooms[code] = Room(code, dm_secret_hash=self._dm_secret_hash)
        logger.info("Created room %s (%d live)", code, len(self._rooms))
        return code

    def get(self, code: object) -> Optional[Room]:
        return self._rooms.get(normalize_code(code))

    def find(self, code: object) -> Room:
        """Return the room for *code* (case-insensitive) or raise ``ROOM_NOT_FOUND``."""
        room = self.get(code)
        if room is None:
            raise TabletopError(ErrorCode.ROOM_NOT_FOUND)
        return room

    # -------------------- Membership index -------------------- #

    def track(self, connection_id: str, room_id: str) -> None:
        self._memberships.setdefault(connection_id, {})[room_id] = None

    def rooms_for(self, connection_id: str) -> List[Room]:
        codes = self._memberships.get(connection_id, {})
        return [self._rooms[code] for code in codes if code in self._rooms]

    def release(self, connection_id: str) -> List[Room]:
        """Forget *connection_id* and return the rooms it was tracked in."""
        rooms = self.rooms_for(connection_id)
        self._memberships.pop(connection_id, None)
        return rooms


__all__ = ["RoomRegistry", "generate_room_code", "normalize_code"]

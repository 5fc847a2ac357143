from __future__ import annotations

import math
import random
from typing import Any, Optional, Tuple

from .constants import SPAWN_MIN, SPAWN_SPREAD
from .schemas import RoomState, Token

# NOTE: ``Room`` deliberately lives in its own module so the registry,
# handlers and cleanup code can share it without import cycles.


def clamp(value: Any, low: float, high: float) -> float:
    """Clamp *value* into ``[low, high]``. Anything non-numeric maps to *low*."""
    if isinstance(value, str):
        value = value.strip() or 0
    try:
        number = float(value)
    except OverflowError:
        # Integers beyond float range behave like +/- infinity.
        return high if value > 0 else low
    except (TypeError, ValueError):
        return low
    if math.isnan(number):
        return low
    return max(low, min(number, high))


def bounded_text(value: Any, default: str, limit: int) -> str:
    """Stringify *value* (falling back to *default* when falsy) and truncate to *limit*."""
    return str(value or default)[:limit]


class Room:
    """One live tabletop session: authoritative state plus DM credentials."""

    def __init__(self, room_id: str, dm_secret_hash: Optional[str] = None):
        self.id = room_id
        self.state = RoomState()
        # bcrypt digest of the shared DM secret; ``None`` means DM login is disabled
        self.dm_secret_hash: Optional[str] = dm_secret_hash

    # ---------------------------------------------------------------------
    # DM authority
    # ---------------------------------------------------------------------

    @property
    def dm_connection_id(self) -> Optional[str]:
        # The client-visible ``state.dm_id`` is the single source of truth.
        return self.state.dm_id

    def assign_dm(self, connection_id: str) -> None:
        self.state.dm_id = connection_id

    def clear_dm(self) -> None:
        self.state.dm_id = None

    # -------------------- Token helpers -------------------- #

    def clamp_to_map(self, x: Any, y: Any) -> Tuple[float, float]:
        return clamp(x, 0, self.state.map.width), clamp(y, 0, self.state.map.height)

    def get_token(self, token_id: str) -> Optional[Token]:
        return self.state.tokens.get(token_id)

    def put_token(self, token: Token) -> None:
        self.state.tokens[token.id] = token

    def pop_token(self, token_id: str) -> Optional[Token]:
        return self.state.tokens.pop(token_id, None)

    def spawn_position(self) -> Tuple[float, float]:
        """Random spawn point for a freshly joined player."""
        return (
            SPAWN_MIN + random.random() * SPAWN_SPREAD,
            SPAWN_MIN + random.random() * SPAWN_SPREAD,
        )

    def snapshot(self) -> dict:
        """Full wire representation of the room state."""
        return self.state.to_wire()


__all__ = ["Room", "clamp", "bounded_text"]

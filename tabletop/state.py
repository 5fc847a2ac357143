"""Runtime state shared by the routers of one application instance.

A :class:`ServerState` is built by ``tabletop.app.create_app`` and stored on
``app.state.tabletop``; nothing here is a module-level singleton, so every
test can build a fresh one.
"""
from __future__ import annotations

from typing import Optional

from .auth_utils import derive_dm_secret_hash
from .config import Settings
from .hub import ConnectionHub
from .registry import RoomRegistry


class ServerState:
    def __init__(self, registry: RoomRegistry, hub: Optional[ConnectionHub] = None):
        self.registry = registry
        self.hub = hub if hub is not None else ConnectionHub()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServerState":
        dm_hash = derive_dm_secret_hash(settings.dm_password, rounds=settings.bcrypt_rounds)
        return cls(RoomRegistry(dm_secret_hash=dm_hash))


__all__ = ["ServerState"]
